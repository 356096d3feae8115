from __future__ import annotations

from enum import Enum


class GenerationErrorKind(str, Enum):
    invalid_credential = "invalid_credential"
    rate_limit = "rate_limit"
    network = "network"
    other = "other"


USER_MESSAGES: dict[GenerationErrorKind, str] = {
    GenerationErrorKind.invalid_credential: (
        "Invalid API key. Please check and try again. "
        "Find your key at https://platform.openai.com/account/api-keys"
    ),
    GenerationErrorKind.rate_limit: "Rate limit exceeded. Please try again later.",
    GenerationErrorKind.network: "Network error. Please check your connection and try again.",
    GenerationErrorKind.other: "Something went wrong while generating feedback. Please try again.",
}


class GenerationError(RuntimeError):
    def __init__(self, kind: GenerationErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


class NotationError(ValueError):
    pass
