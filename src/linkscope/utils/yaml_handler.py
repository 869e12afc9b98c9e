"""YAML serialization of link table rows."""

from pathlib import Path

import yaml

from ..models.link import LinkRecord


class YAMLError(Exception):
    """YAML processing error."""

    pass


def serialize_link(record: LinkRecord) -> str:
    """Serialize a LinkRecord to a YAML string.

    Raises:
        YAMLError: If serialization fails
    """
    try:
        data = record.model_dump(mode="json")
        return yaml.safe_dump(
            data,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    except Exception as e:
        raise YAMLError(f"Failed to serialize link {record.id}: {e}") from e


def deserialize_link(yaml_str: str) -> LinkRecord:
    """Deserialize a LinkRecord from a YAML string.

    Raises:
        YAMLError: If the content is empty, not YAML, or not a valid row
    """
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise YAMLError(f"Invalid YAML format: {e}") from e

    if not isinstance(data, dict):
        raise YAMLError("YAML content is empty or not a mapping")

    try:
        return LinkRecord(**data)
    except Exception as e:
        raise YAMLError(f"Failed to deserialize link: {e}") from e


def load_link_from_file(file_path: Path) -> LinkRecord:
    """Load one row from a YAML file."""
    try:
        yaml_str = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise YAMLError(f"Failed to read {file_path}: {e}") from e
    return deserialize_link(yaml_str)


def save_link_to_file(record: LinkRecord, file_path: Path) -> None:
    """Write one row to a YAML file, replacing it atomically."""
    yaml_str = serialize_link(record)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(".yaml.tmp")
        tmp_path.write_text(yaml_str, encoding="utf-8")
        tmp_path.replace(file_path)
    except OSError as e:
        raise YAMLError(f"Failed to save link to {file_path}: {e}") from e
