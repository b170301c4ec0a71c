"""Optional torch profiling of the tick loop."""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from universe.console import console

from .config import SimulationConfig


def create_profiler(config: SimulationConfig) -> Optional[Any]:
    """Build a torch profiler scheduled over the run, or None when disabled."""
    if not config.profile_enabled:
        return None

    from torch.profiler import ProfilerActivity, profile, schedule

    activities = [ProfilerActivity.CPU]
    if str(config.device).startswith("cuda"):
        activities.append(ProfilerActivity.CUDA)

    warmup = 2
    active = max(1, config.num_steps - config.profile_warmup_steps - warmup)
    return profile(
        activities=activities,
        schedule=schedule(wait=config.profile_warmup_steps, warmup=warmup, active=active, repeat=1),
        on_trace_ready=lambda p: save_profiler_trace(p, config.profile_output_dir),
        record_shapes=True,
    )


@contextmanager
def profiled_ticks(config: SimulationConfig) -> Iterator[Callable[[], None]]:
    """Yield a callback to invoke once per tick; a no-op when profiling is off."""
    profiler = create_profiler(config)
    if profiler is None:
        yield lambda: None
        return
    with profiler:
        yield profiler.step


def save_profiler_trace(profiler, output_dir: Path) -> None:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    trace_path = output_dir / f"ticks_{int(time.time())}.json"
    profiler.export_chrome_trace(str(trace_path))
    console.success("Profiler trace saved", detail=str(trace_path))
    print("\n" + profiler.key_averages().table(sort_by="self_cpu_time_total", row_limit=15))
