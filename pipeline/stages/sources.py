"""Source download stage."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..source_fetcher import SourceArchive
from .base_stage import BaseStage


class FetchSources(BaseStage):
    name = "fetch_sources"
    description = "Download and unpack the pinned opencv and opencv_contrib archives"

    def run(self) -> Optional[Dict[str, Any]]:
        self.milestone("Downloading opencv source...")
        outcomes: Dict[str, str] = {}
        for name, cfg in self.section("sources").items():
            source = SourceArchive.from_config(name, cfg)
            outcomes[name] = self.context.fetcher.fetch(source)
        self.milestone("Opencv source downloaded")
        return outcomes
