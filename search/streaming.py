"""
Streaming-scan search backend reading the remote sources directly.

There is no index, so a query scans sources in order and stops as soon as
the requested page is full. Matches before the page are counted and
dropped, never kept.

The total is exact for every source that was read to the end. For the
others it is estimated:

    estimated matches = sample match ratio * estimated source size

The sample is the first ``sample_size`` records of the source (taken from
the scan itself when the scan got that far, otherwise from a separate read
of that many records). The source size comes from Content-Length divided by
the average line size seen so far, or ``assumed_source_size`` when the
server does not report a length. The reported total is never lower than the
number of matches the scan actually saw.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import ValidationError

from core.config import settings
from core.exceptions import SearchError, SourceFetchError, UnsupportedQueryError
from ingestion.extractors.source_stream import RecordStream, StreamingDecoder
from schemas.inspection import InspectionRecord
from schemas.search import SearchFilter, SearchResult
from search.filters import matches

logger = logging.getLogger(__name__)


@dataclass
class SourceSample:
    records: int = 0
    matches: int = 0


class StreamingSearchBackend:
    """Filter records straight off the remote sources"""

    name = "streaming"

    def __init__(
        self,
        decoder: StreamingDecoder,
        source_ids: Optional[List[str]] = None,
        sample_size: Optional[int] = None,
        assumed_source_size: Optional[int] = None,
    ):
        self.decoder = decoder
        self.source_ids = list(source_ids or settings.SOURCE_FILES)
        self.sample_size = sample_size or settings.SEARCH_SAMPLE_SIZE
        self.assumed_source_size = assumed_source_size or settings.SEARCH_ASSUMED_SOURCE_SIZE

    @staticmethod
    def _validate(data) -> Optional[InspectionRecord]:
        try:
            return InspectionRecord.model_validate(data)
        except ValidationError:
            return None

    async def search(self, filters: SearchFilter) -> SearchResult:
        """
        Raises:
            UnsupportedQueryError: ``filters`` asks for a sort order; results
                can only follow source order
            SearchError: a source could not be read
        """
        if filters.sort_by is not None:
            raise UnsupportedQueryError(
                "Streaming search returns records in source order and cannot sort",
                context={"backend": self.name, "option": "sort_by", "value": filters.sort_by},
            )

        to_skip = (filters.page - 1) * filters.page_size
        results = []
        observed = 0
        estimated_total = 0.0
        exact = True
        page_full = False

        try:
            for source_id in self.source_ids:
                if page_full:
                    estimate, source_exact = await self._estimate_unscanned(source_id, filters)
                    estimated_total += estimate
                    exact = exact and source_exact
                    continue

                sample = SourceSample()
                source_matches = 0
                async with self.decoder.decode(source_id) as stream:
                    async for decoded in stream:
                        record = self._validate(decoded.data)
                        is_match = record is not None and matches(record, filters)

                        if sample.records < self.sample_size:
                            sample.records += 1
                            sample.matches += int(is_match)

                        if not is_match:
                            continue
                        observed += 1
                        source_matches += 1
                        if to_skip > 0:
                            to_skip -= 1
                            continue

                        results.append(record.to_document())
                        if len(results) >= filters.page_size:
                            page_full = True
                            break

                if stream.exhausted:
                    estimated_total += source_matches
                    continue

                exact = False
                if sample.records < self.sample_size:
                    estimate, _ = await self._estimate_unscanned(source_id, filters)
                else:
                    estimate = self._extrapolate(sample, stream)
                estimated_total += max(estimate, source_matches)

        except SourceFetchError as e:
            raise SearchError(
                "Streaming search failed",
                context={"backend": self.name, "filters": filters.applied()},
                original_exception=e,
            ) from e

        total = max(int(round(estimated_total)), observed)
        logger.debug(
            f"Streaming search: {len(results)} results, {observed} matches observed, "
            f"total {'exact' if exact else 'estimated'} {total}"
        )
        return SearchResult(
            results=results,
            total_count=total,
            page=filters.page,
            page_size=filters.page_size,
            total_is_estimate=not exact,
            backend=self.name,
        )

    async def _estimate_unscanned(self, source_id: str, filters: SearchFilter) -> Tuple[float, bool]:
        """Sample the head of a source; exact when the sample reaches its end"""
        sample = SourceSample()
        async with self.decoder.decode(source_id, limit=self.sample_size) as stream:
            async for decoded in stream:
                record = self._validate(decoded.data)
                sample.records += 1
                if record is not None and matches(record, filters):
                    sample.matches += 1

        if stream.exhausted:
            return float(sample.matches), True
        return self._extrapolate(sample, stream), False

    def _extrapolate(self, sample: SourceSample, stream: RecordStream) -> float:
        if sample.records == 0:
            return 0.0
        ratio = sample.matches / sample.records
        return ratio * self._estimate_size(stream)

    def _estimate_size(self, stream: RecordStream) -> float:
        if stream.content_length and stream.lines_consumed and stream.bytes_consumed:
            average_line = stream.bytes_consumed / stream.lines_consumed
            return stream.content_length / average_line
        return float(self.assumed_source_size)
