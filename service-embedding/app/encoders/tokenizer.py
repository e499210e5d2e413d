"""Token codec wrapping a Hugging Face ``tokenizers`` tokenizer.

Turns raw text into token ids plus an attention mask for a single document.
The document prompt template is applied before tokenizing, special tokens are
added by the tokenizer's post-processor, and input longer than the model's
maximum sequence length is cut at a fixed token boundary on the right.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
import structlog
from tokenizers import Tokenizer

from ..errors import ModelLoadError, TokenizationError

logger = structlog.get_logger("embedding_service.tokenizer")

DEFAULT_PROMPT_TEMPLATE = "title: none | text: {text}"


@dataclass(frozen=True)
class TokenizedInput:
    """Token ids and attention mask for one document.

    Both arrays are ``int64``, one-dimensional, of equal length and read-only.
    """

    ids: np.ndarray
    attention_mask: np.ndarray

    def __post_init__(self):
        if self.ids.shape != self.attention_mask.shape or self.ids.ndim != 1:
            raise TokenizationError(
                f"ids {self.ids.shape} and attention mask {self.attention_mask.shape} differ"
            )
        self.ids.flags.writeable = False
        self.attention_mask.flags.writeable = False

    def __len__(self) -> int:
        return int(self.ids.shape[0])


class TokenCodec:
    """Encodes text into ``TokenizedInput``.

    The wrapped tokenizer is configured once here (truncation on, padding
    off) and only read afterwards, so ``encode`` can be called from several
    threads at once.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        max_sequence_length: int = 8192,
        prompt_template: str = DEFAULT_PROMPT_TEMPLATE,
    ):
        if "{text}" not in prompt_template:
            raise ValueError("prompt_template must contain a '{text}' placeholder")

        self.max_sequence_length = max_sequence_length
        self.prompt_template = prompt_template

        tokenizer.no_padding()
        tokenizer.enable_truncation(max_length=max_sequence_length)
        self._tokenizer = tokenizer

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        max_sequence_length: int = 8192,
        prompt_template: str = DEFAULT_PROMPT_TEMPLATE,
    ) -> "TokenCodec":
        """Load a ``tokenizer.json`` file.

        Raises ``ModelLoadError`` when the file is missing or unreadable.
        """
        path = Path(path)
        if not path.is_file():
            raise ModelLoadError(f"Tokenizer file not found: {path}")

        try:
            tokenizer = Tokenizer.from_file(str(path))
        except Exception as e:
            logger.error("Failed to load tokenizer", path=str(path), error=str(e))
            raise ModelLoadError(f"Failed to load tokenizer from {path}: {e}") from e

        logger.info(
            "Loaded tokenizer",
            path=str(path),
            vocab_size=tokenizer.get_vocab_size(),
            max_sequence_length=max_sequence_length,
        )
        return cls(tokenizer, max_sequence_length, prompt_template)

    def format_prompt(self, text: str) -> str:
        return self.prompt_template.replace("{text}", text)

    def encode(self, text: str) -> TokenizedInput:
        """Tokenize one document.

        Raises ``TokenizationError`` if the tokenizer rejects the input or
        produces no tokens.
        """
        try:
            encoding = self._tokenizer.encode(self.format_prompt(text), add_special_tokens=True)
        except Exception as e:
            raise TokenizationError(f"Tokenization failed: {e}") from e

        if not encoding.ids:
            raise TokenizationError("Tokenizer produced no tokens")

        if encoding.overflowing:
            logger.debug(
                "Input truncated to maximum sequence length",
                max_sequence_length=self.max_sequence_length,
            )

        return TokenizedInput(
            ids=np.asarray(encoding.ids, dtype=np.int64),
            attention_mask=np.asarray(encoding.attention_mask, dtype=np.int64),
        )
