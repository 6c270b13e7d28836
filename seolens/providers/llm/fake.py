from __future__ import annotations

from typing import Iterable


class FakeModelClient:
    def __init__(
        self,
        responses: Iterable[str | Exception] = ("This is a fake response.",),
        *,
        provider: str = "fake",
        model: str = "fake-model",
    ) -> None:
        # Scripted responses keep tests stable without external calls; the last one repeats.
        self._responses = list(responses)
        self.provider = provider
        self.model = model
        self.calls: list[dict[str, str | None]] = []
        self.closed = False

    async def generate(self, user_prompt: str, system_prompt: str | None = None) -> str:
        self.calls.append({"user_prompt": user_prompt, "system_prompt": system_prompt})
        index = min(len(self.calls), len(self._responses)) - 1
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True
