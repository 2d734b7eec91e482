"""Job functions for the pool tests.

They run inside worker processes, so they live at module level where a
spawned child can import them. The winning number picks the behavior.
"""

import time

from spinreel.runtime.job import RenderRequest, RenderResult, WorkerContext

STALL = 0
STUBBORN = 1
SLOW = 7
FAIL = 13

FRAMES = 5


def _result(request: RenderRequest, frames: int = FRAMES) -> RenderResult:
    return RenderResult(
        buffer=b"GIF89a" + bytes(16),
        format="gif",
        size_bytes=22,
        frame_count=frames,
        fps=request.options.fps,
        resolution=(request.options.size, request.options.size),
        winning_number=request.winning_number,
        encode_time_ms=1.0,
    )


def scripted_job(request: RenderRequest, context: WorkerContext) -> RenderResult:
    number = request.winning_number

    if number == FAIL:
        raise ValueError("boom")

    if number == STUBBORN:
        # Never reaches a checkpoint
        time.sleep(60)

    if number == STALL:
        frame = 0
        while True:
            context.checkpoint(frame % 100, 100)
            frame += 1
            time.sleep(0.02)

    delay = 0.3 if number == SLOW else 0.0
    for frame in range(FRAMES):
        context.checkpoint(frame, FRAMES)
        time.sleep(delay / FRAMES)
    return _result(request)


def always_fail(request: RenderRequest, context: WorkerContext) -> RenderResult:
    raise RuntimeError("renderer unavailable")
