# motionwatch/pipeline/comparator.py
from __future__ import annotations
import asyncio, math, shlex
from typing import List, Optional

from motionwatch.common.config import DEFAULT_DIFF_COMMAND
from motionwatch.common.logging import get_logger
from motionwatch.common.schemas import ComparisonResult

log = get_logger()


def _parse_score(stderr: bytes) -> int:
    """
    The diff tool prints the distortion metric on stderr: "0", "1234",
    or with newer ImageMagick "1234 (0.0188)" / "1.2e+06".
    """
    txt = (stderr or b"").decode(errors="ignore").strip()
    if not txt:
        raise ValueError("empty diff output")
    token = txt.split()[0]
    try:
        score = int(token)
    except ValueError:
        value = float(token)
        if not math.isfinite(value):
            raise ValueError(f"non-finite distortion {token}")
        score = int(value)
    if score < 0:
        raise ValueError(f"negative distortion {score}")
    return score


class SceneComparator:
    """
    Runs the external diff tool on a frame pair:
      <command template with {fuzz} {before} {after}>
    stdout is discarded; the score is read from stderr.
    Any failure is reported as score 0 ("no change") with error set.
    """

    def __init__(self, command: str = DEFAULT_DIFF_COMMAND):
        self.command = command

    def build_args(self, before: str, after: str, fuzz_percent: int) -> List[str]:
        # substitute per token so paths with spaces stay one argument
        return [
            part.format(fuzz=fuzz_percent, before=before, after=after)
            for part in shlex.split(self.command)
        ]

    async def compare(self, before: Optional[str], after: Optional[str], fuzz_percent: int) -> Optional[ComparisonResult]:
        if not before or not after:
            log.debug(f"[comparison] skipped before={before} after={after}")
            return None

        parts = self.build_args(before, after, fuzz_percent)
        log.debug(f"Diff CLI: {' '.join(parts)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *parts,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, err = await proc.communicate()
        except OSError as e:
            log.warning(f"[comparison] diff tool failed to start ({e}); assuming no change")
            return ComparisonResult(before=before, after=after, score=0, error=str(e))

        # ImageMagick compare exits 1 when images differ; only the metric matters
        try:
            score = _parse_score(err)
        except ValueError as e:
            log.warning(
                f"[comparison] unparseable diff output exit={proc.returncode} "
                f"before={before} after={after}: {e}; assuming no change"
            )
            return ComparisonResult(before=before, after=after, score=0, error=str(e))

        return ComparisonResult(before=before, after=after, score=score)
