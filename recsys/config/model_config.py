from __future__ import annotations

from dataclasses import dataclass

from recsys.errors import ConfigError

# Bounded buffer for the weights path, in UTF-8 bytes.
MAX_PATH_BYTES = 255


def _encode(text: str) -> bytes:
    if not isinstance(text, str):
        raise ConfigError(f"Model config must be a string, got {type(text).__name__}")
    if "\x00" in text:
        raise ConfigError("Model config must not contain NUL characters")
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ConfigError(f"Model config is not valid UTF-8 text: {e}") from e


@dataclass(frozen=True)
class ModelConfig:
    """
    Location of externally trained weights for a model.

    The path is a bounded string (at most 255 UTF-8 bytes). Constructing a
    config directly with a longer path is an error; parse_config() truncates
    instead.
    """
    path_to_weights: str = ""

    def __post_init__(self) -> None:
        raw = _encode(self.path_to_weights)
        if len(raw) > MAX_PATH_BYTES:
            raise ConfigError(
                f"path_to_weights is {len(raw)} bytes; the limit is {MAX_PATH_BYTES}"
            )


def parse_config(text: str) -> ModelConfig:
    """
    Parse a config string into a ModelConfig.

    Inputs longer than 255 bytes are truncated (lossy, not an error). The cut
    never splits a multi-byte character: a partial trailing character is dropped.
    """
    raw = _encode(text)
    if len(raw) > MAX_PATH_BYTES:
        text = raw[:MAX_PATH_BYTES].decode("utf-8", errors="ignore")
    return ModelConfig(path_to_weights=text)


def format_config(config: ModelConfig) -> str:
    if not isinstance(config, ModelConfig):
        raise ConfigError(f"Expected ModelConfig, got {type(config).__name__}")
    return config.path_to_weights


__all__ = ["MAX_PATH_BYTES", "ModelConfig", "parse_config", "format_config"]
