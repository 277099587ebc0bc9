import asyncio
import json
import re
from types import SimpleNamespace

import pytest

from mandalamind.schemas.brainwave import BrainwaveData
from mandalamind.schemas.mandala import MandalaGenerationOptions
from mandalamind.services.ai_base import (
    LocalMandalaService,
    MandalaAIService,
    build_ai_service,
    is_quota_error,
)
from mandalamind.services.gemini_service import GeminiService
from mandalamind.services.mandala_prompts import build_fallback_prompt
from mandalamind.services.openai_service import OpenAIService

FALLBACK_PREFIX = "Fallback mandala generated locally with unique variations: "


class QuotaError(Exception):
    code = "insufficient_quota"


class RateLimitError(Exception):
    status_code = 429


class BadRequestError(Exception):
    status_code = 400


class GeminiExhausted(Exception):
    code = 429
    status = "RESOURCE_EXHAUSTED"


def brainwave():
    return BrainwaveData(attention=60, meditation=40, signalQuality=80, timestamp=0)


def options():
    return MandalaGenerationOptions(voiceTranscript="I feel calm and grateful", brainwaveData=brainwave())


class Scripted:
    """Async callable returning (or raising) queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def image_response(url, revised="revised by dall-e"):
    return SimpleNamespace(data=[SimpleNamespace(url=url, revised_prompt=revised)])


def openai_client(chat=None, images=None):
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=chat or Scripted())),
        images=SimpleNamespace(generate=images or Scripted()),
    )


def openai_service(sleep_recorder, chat=None, images=None):
    return OpenAIService(api_key="sk-test", sleep=sleep_recorder, client=openai_client(chat, images))


def run(coro):
    return asyncio.run(coro)


# --- error classification ---

def test_quota_error_detection():
    assert is_quota_error(QuotaError())
    assert is_quota_error(RateLimitError())
    assert is_quota_error(GeminiExhausted())
    assert is_quota_error(RuntimeError("You exceeded your current quota"))
    assert not is_quota_error(RuntimeError("connection reset"))
    assert not is_quota_error(BadRequestError())


# --- prompt generation ---

def test_prompt_success(sleep_recorder):
    chat = Scripted(chat_response(json.dumps({"prompt": "a radiant lotus"})))
    service = openai_service(sleep_recorder, chat=chat)

    assert run(service.generate_mandala_prompt(options())) == "a radiant lotus"
    assert chat.calls[0]["response_format"] == {"type": "json_object"}
    assert sleep_recorder.calls == []


def test_prompt_retries_with_backoff(sleep_recorder):
    chat = Scripted(
        RuntimeError("upstream hiccup"),
        RuntimeError("upstream hiccup"),
        chat_response(json.dumps({"prompt": "third time lucky"})),
    )
    service = openai_service(sleep_recorder, chat=chat)

    assert run(service.generate_mandala_prompt(options())) == "third time lucky"
    assert sleep_recorder.calls == [2, 4]


def test_prompt_falls_back_after_three_failures(sleep_recorder):
    chat = Scripted(*(RuntimeError("down") for _ in range(3)))
    service = openai_service(sleep_recorder, chat=chat)

    assert run(service.generate_mandala_prompt(options())) == build_fallback_prompt(options())
    assert len(chat.calls) == 3
    assert sleep_recorder.calls == [2, 4]


@pytest.mark.parametrize("error", [QuotaError(), RateLimitError()])
def test_prompt_quota_errors_stop_immediately(sleep_recorder, error):
    chat = Scripted(error)
    service = openai_service(sleep_recorder, chat=chat)

    assert run(service.generate_mandala_prompt(options())) == build_fallback_prompt(options())
    assert len(chat.calls) == 1
    assert sleep_recorder.calls == []


def test_empty_prompt_falls_back(sleep_recorder):
    chat = Scripted(chat_response(json.dumps({"prompt": ""})))
    service = openai_service(sleep_recorder, chat=chat)

    assert run(service.generate_mandala_prompt(options())) == build_fallback_prompt(options())
    assert len(chat.calls) == 1


def test_missing_key_uses_local_generation(sleep_recorder):
    service = OpenAIService(api_key=None, sleep=sleep_recorder)

    assert service.client is None
    assert run(service.generate_mandala_prompt(options())) == build_fallback_prompt(options())
    generated = run(service.generate_mandala_image("lotus", brainwave()))
    assert generated.revisedPrompt == FALLBACK_PREFIX + "lotus"
    assert sleep_recorder.calls == []


# --- image generation ---

def test_image_success(sleep_recorder):
    images = Scripted(image_response("https://images.example/abc.png"))
    service = openai_service(sleep_recorder, images=images)

    generated = run(service.generate_mandala_image("lotus", brainwave()))

    assert generated.imageUrl == "https://images.example/abc.png"
    assert generated.revisedPrompt == "revised by dall-e"
    assert "lotus" in generated.prompt
    assert images.calls[0]["size"] == "1024x1024"
    assert images.calls[0]["model"] == "dall-e-3"


def test_image_retries_once_then_falls_back(sleep_recorder):
    images = Scripted(RuntimeError("timeout"), RuntimeError("timeout"))
    service = openai_service(sleep_recorder, images=images)

    generated = run(service.generate_mandala_image("lotus", brainwave()))

    assert generated.imageUrl.startswith("data:image/svg+xml;base64,")
    assert generated.revisedPrompt == FALLBACK_PREFIX + "lotus"
    assert len(images.calls) == 2
    assert sleep_recorder.calls == [2]


def test_image_missing_url_is_a_failure(sleep_recorder):
    images = Scripted(SimpleNamespace(data=[]), image_response("https://images.example/ok.png"))
    service = openai_service(sleep_recorder, images=images)

    generated = run(service.generate_mandala_image("lotus"))
    assert generated.imageUrl == "https://images.example/ok.png"


@pytest.mark.parametrize("error", [QuotaError(), RateLimitError(), BadRequestError()])
def test_image_stops_on_quota_or_bad_request(sleep_recorder, error):
    images = Scripted(error)
    service = openai_service(sleep_recorder, images=images)

    generated = run(service.generate_mandala_image("lotus", brainwave()))

    assert generated.revisedPrompt == FALLBACK_PREFIX + "lotus"
    assert len(images.calls) == 1
    assert sleep_recorder.calls == []


# --- sentiment ---

def test_sentiment_is_clamped(sleep_recorder):
    chat = Scripted(chat_response(json.dumps({"rating": 4.6, "confidence": 1.4, "emotions": ["joy"]})))
    service = openai_service(sleep_recorder, chat=chat)

    result = run(service.analyze_sentiment("What a wonderful day"))
    assert (result.rating, result.confidence, result.emotions) == (5, 1.0, ["joy"])


def test_sentiment_defaults_on_failure(sleep_recorder):
    service = openai_service(sleep_recorder, chat=Scripted(RuntimeError("down")))

    result = run(service.analyze_sentiment("hmm"))
    assert (result.rating, result.confidence, result.emotions) == (3, 0.5, ["neutral"])


def test_sentiment_without_key_is_neutral(sleep_recorder):
    result = run(OpenAIService(api_key=None, sleep=sleep_recorder).analyze_sentiment("hi"))
    assert result.rating == 3


# --- gemini ---

def gemini_client(generate):
    return SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate)))


def gemini_image_response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def test_gemini_prompt_uses_json_schema(sleep_recorder, tmp_path):
    generate = Scripted(SimpleNamespace(text=json.dumps({"prompt": "cosmic lotus"})))
    service = GeminiService(api_key="g-test", sleep=sleep_recorder, client=gemini_client(generate), assets_dir=tmp_path)

    assert run(service.generate_mandala_prompt(options())) == "cosmic lotus"
    config = generate.calls[0]["config"]
    assert config.response_mime_type == "application/json"


def test_gemini_image_is_saved_as_asset(sleep_recorder, tmp_path):
    generate = Scripted(gemini_image_response(
        SimpleNamespace(text="A glowing mandala", inline_data=None),
        SimpleNamespace(text=None, inline_data=SimpleNamespace(data=b"\x89PNG-bytes")),
    ))
    service = GeminiService(
        api_key="g-test",
        sleep=sleep_recorder,
        client=gemini_client(generate),
        assets_dir=tmp_path,
        clock=lambda: 1700000000.5,
    )

    generated = run(service.generate_mandala_image("lotus", brainwave()))

    assert re.fullmatch(r"/attached_assets/mandala_1700000000500_[0-9a-f]{8}\.png", generated.imageUrl)
    assert generated.revisedPrompt == "A glowing mandala"
    filename = generated.imageUrl.rsplit("/", 1)[1]
    assert (tmp_path / filename).read_bytes() == b"\x89PNG-bytes"
    assert "lotus" in generated.prompt


def test_gemini_image_without_data_falls_back(sleep_recorder, tmp_path):
    generate = Scripted(
        gemini_image_response(SimpleNamespace(text="only words", inline_data=None)),
        SimpleNamespace(candidates=[]),
    )
    service = GeminiService(api_key="g-test", sleep=sleep_recorder, client=gemini_client(generate), assets_dir=tmp_path)

    generated = run(service.generate_mandala_image("lotus", brainwave()))

    assert generated.imageUrl.startswith("data:image/svg+xml;base64,")
    assert sleep_recorder.calls == [2]
    assert list(tmp_path.iterdir()) == []


def test_gemini_resource_exhausted_stops(sleep_recorder, tmp_path):
    generate = Scripted(GeminiExhausted("429 RESOURCE_EXHAUSTED"))
    service = GeminiService(api_key="g-test", sleep=sleep_recorder, client=gemini_client(generate), assets_dir=tmp_path)

    assert run(service.generate_mandala_prompt(options())) == build_fallback_prompt(options())
    assert len(generate.calls) == 1


def test_gemini_health_check(sleep_recorder, tmp_path):
    healthy = GeminiService(
        api_key="g-test", sleep=sleep_recorder,
        client=gemini_client(Scripted(SimpleNamespace(text="OK"))), assets_dir=tmp_path,
    )
    broken = GeminiService(
        api_key="g-test", sleep=sleep_recorder,
        client=gemini_client(Scripted(RuntimeError("nope"))), assets_dir=tmp_path,
    )

    assert run(healthy.health_check()) is True
    assert run(broken.health_check()) is False
    assert run(GeminiService(api_key=None, assets_dir=tmp_path).health_check()) is False


# --- factory ---

def test_build_ai_service_selects_provider():
    assert isinstance(build_ai_service("openai"), OpenAIService)
    assert isinstance(build_ai_service("gemini"), GeminiService)
    assert isinstance(build_ai_service("local"), LocalMandalaService)
    assert isinstance(build_ai_service("something"), LocalMandalaService)


def test_same_millisecond_images_get_distinct_files(sleep_recorder, tmp_path):
    service = GeminiService(
        api_key="g-test", sleep=sleep_recorder, client=gemini_client(Scripted()),
        assets_dir=tmp_path, clock=lambda: 1700000000.0,
    )

    first = run(service.save_image(b"one"))
    second = run(service.save_image("dHdv"))

    assert first != second
    assert sorted(p.read_bytes() for p in tmp_path.iterdir()) == [b"one", b"two"]


def test_provider_base_requires_both_hooks():
    class PromptOnly(MandalaAIService):
        async def _request_prompt(self, options):
            return "lotus"

    with pytest.raises(TypeError):
        MandalaAIService(api_key="k")
    with pytest.raises(TypeError):
        PromptOnly(api_key="k")


def test_local_service_hooks_generate_locally():
    service = LocalMandalaService()

    assert run(service._request_prompt(options())) == build_fallback_prompt(options())
    assert run(service._request_image("lotus", brainwave())).revisedPrompt == FALLBACK_PREFIX + "lotus"
