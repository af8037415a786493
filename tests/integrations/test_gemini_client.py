import pytest

from personal_metrics.integrations.contracts import SummaryError
from personal_metrics.integrations.gemini_client import GeminiSummaryClient, extract_json


def test_extract_json_reads_fenced_block() -> None:
    text = 'Here you go:\n```json\n{"response": "<p>Hi</p>", "debug": {}}\n```\n'

    assert extract_json(text) == {"response": "<p>Hi</p>", "debug": {}}


def test_extract_json_reads_raw_json() -> None:
    assert extract_json('{"response": "<p>Hi</p>"}') == {"response": "<p>Hi</p>"}


@pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2]"])
def test_extract_json_rejects_other_content(text) -> None:
    assert extract_json(text) is None


@pytest.mark.asyncio
async def test_summarize_requires_an_api_key() -> None:
    client = GeminiSummaryClient(api_key=None, model="gemini-2.0-flash")

    with pytest.raises(SummaryError, match="GEMINI_API_KEY"):
        await client.summarize("prompt")


@pytest.mark.asyncio
async def test_summarize_returns_response_field(monkeypatch: pytest.MonkeyPatch) -> None:
    client = GeminiSummaryClient(api_key="key", model="gemini-2.0-flash")
    prompts: list[str] = []

    def fake_generate(prompt: str) -> str:
        prompts.append(prompt)
        return '```json\n{"response": " <p>Reads a lot.</p> "}\n```'

    monkeypatch.setattr(client, "_generate", fake_generate)

    assert await client.summarize("summarize this") == "<p>Reads a lot.</p>"
    assert prompts == ["summarize this"]


@pytest.mark.asyncio
async def test_summarize_wraps_sdk_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    client = GeminiSummaryClient(api_key="key", model="gemini-2.0-flash")

    def failing_generate(prompt: str) -> str:
        raise RuntimeError("quota")

    monkeypatch.setattr(client, "_generate", failing_generate)

    with pytest.raises(SummaryError, match="quota"):
        await client.summarize("prompt")


@pytest.mark.asyncio
async def test_summarize_rejects_unparseable_output(monkeypatch: pytest.MonkeyPatch) -> None:
    client = GeminiSummaryClient(api_key="key", model="gemini-2.0-flash")
    monkeypatch.setattr(client, "_generate", lambda prompt: "I cannot help with that.")

    with pytest.raises(SummaryError):
        await client.summarize("prompt")
