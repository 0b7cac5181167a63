"""
Tests for the Replicate transform client.

The replicate SDK is never called: a FakeProvider runner records the prompt and the
files each attempt received.
"""
from unittest.mock import MagicMock, patch

import pytest

from conftest import FAKE_RESULT_URL, FakeProvider
from core.exceptions import ProviderError
from core.retry import RetryPolicy
from services.transform_client import ReplicateTransformClient, parse_output


class Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def images(tmp_path, jpeg_bytes):
    paths = []
    for name in ("room.jpg", "tile.jpg", "wall_tile.png"):
        path = tmp_path / name
        path.write_bytes(jpeg_bytes)
        paths.append(path)
    return paths


class TestParseOutput:
    def test_url_string(self):
        assert parse_output(FAKE_RESULT_URL) == FAKE_RESULT_URL

    def test_list_takes_first(self):
        assert parse_output([FAKE_RESULT_URL, "https://other"]) == FAKE_RESULT_URL

    def test_file_output_object(self):
        class FileOutput:
            def __str__(self):
                return FAKE_RESULT_URL

        assert parse_output(FileOutput()) == FAKE_RESULT_URL

    @pytest.mark.parametrize("output", [None, [], "", "not a url", {"url": 1}])
    def test_unusable_output(self, output):
        assert parse_output(output) is None


class TestReplicateTransformClient:
    @pytest.mark.asyncio
    async def test_sends_prompt_and_ordered_images(self, images):
        provider = FakeProvider()
        client = ReplicateTransformClient("r8_test", runner=provider)

        result = await client.transform("replace the floor", images)

        assert result.image_url == FAKE_RESULT_URL
        assert result.attempts == 1
        assert provider.calls == [
            {"model": "google/nano-banana", "prompt": "replace the floor", "images": ["room.jpg", "tile.jpg", "wall_tile.png"]}
        ]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, images):
        sleep = Recorder()
        provider = FakeProvider(failures=2)
        client = ReplicateTransformClient(
            "r8_test", retry_policy=RetryPolicy(max_attempts=3, delay=2.0, sleep=sleep), runner=provider
        )

        result = await client.transform("prompt", images[:2])

        assert result.image_url == FAKE_RESULT_URL
        assert result.attempts == 3
        assert sleep.delays == [2.0, 2.0]
        # Every attempt got its own handles for the same files
        assert [call["images"] for call in provider.calls] == [["room.jpg", "tile.jpg"]] * 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_provider_error(self, images):
        provider = FakeProvider(failures=5, error="Prediction failed: E6716 rate limited")
        client = ReplicateTransformClient(
            "r8_test", retry_policy=RetryPolicy(max_attempts=3, delay=0, sleep=Recorder()), runner=provider
        )

        with pytest.raises(ProviderError) as exc_info:
            await client.transform("prompt", images[:2])

        assert len(provider.calls) == 3
        assert "E6716 rate limited" in exc_info.value.message
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_empty_output_is_not_an_error(self, images):
        client = ReplicateTransformClient("r8_test", runner=FakeProvider(output=[]))
        result = await client.transform("prompt", images[:2])
        assert result.image_url is None
        assert result.raw_output_type == "list"

    @pytest.mark.asyncio
    async def test_default_runner_uses_replicate_client(self, images):
        fake_client = MagicMock()
        fake_client.run.return_value = [FAKE_RESULT_URL]
        with patch("services.transform_client.replicate.Client", return_value=fake_client) as client_cls:
            client = ReplicateTransformClient("r8_secret", model="google/nano-banana")
            result = await client.transform("prompt", images[:2])

        client_cls.assert_called_once_with(api_token="r8_secret")
        model, = fake_client.run.call_args[0]
        assert model == "google/nano-banana"
        model_input = fake_client.run.call_args[1]["input"]
        assert model_input["prompt"] == "prompt"
        assert len(model_input["image_input"]) == 2
        assert result.image_url == FAKE_RESULT_URL
