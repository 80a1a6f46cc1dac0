"""
Chunk file loading.

Reads a processed-document file (JSON or YAML) holding chunk records,
either as a bare list or under a "chunks" key, and validates every record.
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from sop_assistant.config import DEBUG_MODE
from sop_assistant.logging_config import debug_log
from sop_assistant.retrieval.base import Chunk
from sop_assistant.retrieval.exceptions import InvalidInputError
from sop_assistant.retrieval.indexer import validate_chunks

YAML_SUFFIXES = {".yaml", ".yml"}


def read_chunk_records(path: Path | str) -> list[Any]:
    """
    Read raw chunk records from a JSON or YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidInputError: If the file cannot be parsed or holds no record list
    """
    path = Path(path)

    with open(path, encoding='utf-8') as f:
        try:
            if path.suffix.lower() in YAML_SUFFIXES:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise InvalidInputError(f"Could not parse {path}: {e}") from e

    if isinstance(data, Mapping):
        data = data.get("chunks")
    if not isinstance(data, list):
        raise InvalidInputError(f"{path} must hold a list of chunk records or a 'chunks' list")
    return data


def load_chunks(path: Path | str) -> list[Chunk]:
    """
    Load and validate chunks from a JSON or YAML file.

    Args:
        path: File to read

    Returns:
        Validated chunks in file order

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidInputError: If the file or any record is malformed
    """
    records = read_chunk_records(path)
    chunks = validate_chunks(records)

    if DEBUG_MODE:
        debug_log(f"[ChunkLoader] Loaded {len(chunks)} chunks from {path}")

    return chunks
