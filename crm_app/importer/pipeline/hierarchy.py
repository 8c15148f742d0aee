"""Board -> pipeline -> stage resolution for work-item imports."""

from __future__ import annotations

from typing import Iterable

from crm_app.importer.contracts import ImportContentType
from crm_app.importer.pipeline.field_mapper import DraftDocument
from crm_app.importer.pipeline.lookups import ImportLookups
from crm_app.models import BoardType


class HierarchyResolver:
    """
    Resolve name triples into a stage id.

    Any missing level leaves the stage unassigned. Results are memoised per
    resolver, which lives for one invocation.
    """

    def __init__(self, lookups: ImportLookups) -> None:
        self.lookups = lookups
        self._resolved: dict[tuple, int | None] = {}

    def resolve(
        self,
        board_name: str,
        pipeline_name: str,
        stage_name: str,
        content_type: ImportContentType,
    ) -> int | None:
        if not content_type.is_work_item:
            return None
        if not (board_name and pipeline_name and stage_name):
            return None

        key = (content_type.value, board_name, pipeline_name, stage_name)
        if key not in self._resolved:
            self._resolved[key] = self._lookup(board_name, pipeline_name, stage_name, content_type)
        return self._resolved[key]

    def _lookup(self, board_name, pipeline_name, stage_name, content_type) -> int | None:
        board_id = self.lookups.board_id(board_name, BoardType(content_type.value))
        if board_id is None:
            return None
        pipeline_id = self.lookups.pipeline_id(board_id, pipeline_name)
        if pipeline_id is None:
            return None
        return self.lookups.stage_id(pipeline_id, stage_name)

    def apply(self, drafts: Iterable[DraftDocument], content_type: ImportContentType) -> int:
        """Write ``stage_id`` onto every draft carrying a stage reference. Returns how many resolved."""

        resolved = 0
        for draft in drafts:
            ref = draft.stage_ref
            if ref is None:
                continue
            stage_id = self.resolve(ref.board_name, ref.pipeline_name, ref.stage_name, content_type)
            if stage_id is not None:
                draft["stage_id"] = stage_id
                resolved += 1
        return resolved
