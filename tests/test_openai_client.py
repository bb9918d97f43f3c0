import pytest
import requests

from compliance_watch.llm.openai_client import OpenAIClientError, OpenAIJSONClient


class _Resp:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.body = body
        self.text = str(body)

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


def _chat(content):
    return {"choices": [{"message": {"content": content}}]}


def test_timeout_bounds_connect_and_read(monkeypatch):
    seen = {}

    def fake_post(url, *, headers, json, timeout):
        seen.update(url=url, timeout=timeout, auth=headers["Authorization"], model=json["model"])
        return _Resp(200, _chat('{"relevanceLevel": "high"}'))

    monkeypatch.setattr(requests, "post", fake_post)
    client = OpenAIJSONClient(model="gpt-4o-mini", api_key="sk-test", timeout_s=2.5, base_url="http://llm.local/v1/")

    out = client.complete_json(system_prompt="s", user_prompt="u")

    assert out == {"relevanceLevel": "high"}
    assert seen["url"] == "http://llm.local/v1/chat/completions"
    assert seen["timeout"] == (2.5, 2.5)
    assert seen["auth"] == "Bearer sk-test"
    assert OpenAIJSONClient(api_key="k").timeout_s == 60.0


def test_transport_timeout_becomes_client_error(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(OpenAIClientError, match="read timed out"):
        OpenAIJSONClient(api_key="k", timeout_s=0.5).complete_json(system_prompt="s", user_prompt="u")


@pytest.mark.parametrize(
    "resp",
    [
        _Resp(500, {"error": "boom"}),
        _Resp(200, ValueError("not json")),
        _Resp(200, {"choices": []}),
        _Resp(200, _chat("not json at all")),
        _Resp(200, _chat("[1, 2]")),
    ],
)
def test_bad_responses_raise_client_error(monkeypatch, resp):
    monkeypatch.setattr(requests, "post", lambda *a, **k: resp)
    with pytest.raises(OpenAIClientError):
        OpenAIJSONClient(api_key="k").complete_json(system_prompt="s", user_prompt="u")


def test_missing_key_raises(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(OpenAIClientError, match="OPENAI_API_KEY"):
        OpenAIJSONClient().complete_json(system_prompt="s", user_prompt="u")
