"""Generating call examples for ingested API endpoints."""

from __future__ import annotations

from typing import Any

from wanzhi.knowledge_base import KnowledgeBase
from wanzhi.model import Endpoint, SpecMeta
from wanzhi.tool_types import GenerateExampleResult, ToolError, decode_args, split_endpoint


def _text(payload: dict[str, Any], key: str, tool: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ToolError(f"decode {tool} args: {key} must be a string")
    return value


def build_example_code(endpoint: Endpoint, spec_meta: SpecMeta, language: str) -> str:
    """Render a snippet that calls the endpoint in the given language."""
    url = spec_meta.url_for_path(endpoint.path)
    method = endpoint.method
    if language == "go":
        return (
            f"// {method} {endpoint.path}\n"
            f'req, err := http.NewRequest("{method}", "{url}", nil)\n'
            "if err != nil {\n"
            "    log.Fatal(err)\n"
            "}\n"
            "resp, err := http.DefaultClient.Do(req)\n"
            "if err != nil {\n"
            "    log.Fatal(err)\n"
            "}\n"
            "defer resp.Body.Close()\n"
            "body, _ := io.ReadAll(resp.Body)\n"
            "fmt.Println(string(body))"
        )
    if language == "curl":
        return f'curl -X {method} "{url}"'
    if language == "python":
        return (
            "import requests\n"
            "\n"
            f'response = requests.{method.lower()}("{url}")\n'
            "print(response.json())"
        )
    if language == "javascript":
        return (
            f'fetch("{url}", {{method: "{method.lower()}"}})\n'
            "  .then(r => r.json())\n"
            "  .then(data => console.log(data))"
        )
    if language == "java":
        return (
            f"// {method} {endpoint.path}\n"
            "HttpClient client = HttpClient.newHttpClient();\n"
            "HttpRequest request = HttpRequest.newBuilder()\n"
            f'    .uri(URI.create("{url}"))\n'
            f'    .method("{method}", HttpRequest.BodyPublishers.noBody())\n'
            "    .build();\n"
            "HttpResponse<String> response = client.send(request, "
            "HttpResponse.BodyHandlers.ofString());\n"
            "System.out.println(response.body());"
        )
    return f"// no example template for {language}"


class GenerateExampleTool:
    name = "generate_example"
    description = "为指定接口生成调用示例代码"
    schema = {
        "type": "object",
        "required": ["endpoint", "language"],
        "properties": {
            "endpoint": {"type": "string"},
            "language": {
                "type": "string",
                "enum": ["go", "python", "java", "javascript", "curl"],
            },
        },
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> GenerateExampleResult:
        payload = decode_args(args, self.name)
        service = _text(payload, "service", self.name)
        endpoint_name = _text(payload, "endpoint", self.name)
        language = _text(payload, "language", self.name)

        method, path = split_endpoint(endpoint_name)
        try:
            ep = self._kb.get_endpoint(service, method, path)
        except (LookupError, ValueError):
            raise ToolError(f"endpoint not found: {endpoint_name}") from None
        try:
            spec = self._kb.get_spec_meta(service)
        except (LookupError, ValueError):
            raise ToolError(f"spec not found: {service}") from None

        return GenerateExampleResult(
            endpoint=ep.display_name(),
            language=language,
            code=build_example_code(ep, spec, language),
        )