from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Tuple


class TrackerClient(Protocol):
    """Boundary of the issue tracker's metadata/write API used by the pipeline."""

    def list_issue_types(self) -> List[Dict[str, Any]]:
        ...

    def get_create_metadata_fields(self, issue_type_id: str) -> Dict[str, Dict[str, Any]]:
        ...

    def get_field(self, field_id: str) -> Optional[Dict[str, Any]]:
        ...

    def get_field_options(self, field_id: str) -> List[Dict[str, Any]]:
        ...

    def create_issue(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        ...

    def delete_issue(self, issue_key: str) -> bool:
        ...

    def browse_url(self, issue_key: str) -> str:
        ...


class CompletionProvider(Protocol):
    def complete(self, prompt: str) -> str:
        ...
