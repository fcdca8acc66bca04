import asyncio
import logging
import sys
from pathlib import Path

import pytest

from autopilot.proc import ProcessLaunchError, ProcessRunner


def test_run_captures_output_and_exit_code(tmp_path: Path) -> None:
    script = "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"

    result = asyncio.run(ProcessRunner().run(tmp_path, sys.executable, ["-c", script]))

    assert result.exit_code == 3
    assert not result.ok
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"


def test_run_uses_working_directory(tmp_path: Path) -> None:
    script = "import os; print(os.getcwd())"

    result = asyncio.run(ProcessRunner().run(tmp_path, sys.executable, ["-c", script]))

    assert result.ok
    assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()


def test_missing_program_is_a_launch_error(tmp_path: Path) -> None:
    with pytest.raises(ProcessLaunchError) as excinfo:
        asyncio.run(ProcessRunner().run(tmp_path, "definitely-not-a-real-program-xyz"))

    assert excinfo.value.program == "definitely-not-a-real-program-xyz"


def test_background_output_goes_to_log_only(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    script = "print('ready on port 5174')"

    async def scenario() -> int | None:
        handle = await ProcessRunner().launch(
            tmp_path, sys.executable, ["-c", script], name="preview"
        )
        await handle.process.wait()
        while handle._tasks:
            await asyncio.gather(*list(handle._tasks))
        return handle.process.returncode

    with caplog.at_level(logging.INFO, logger="autopilot.proc"):
        return_code = asyncio.run(scenario())

    assert return_code == 0
    messages = [record.getMessage() for record in caplog.records]
    assert "ready on port 5174" in messages
    assert "Background process closed" in messages
    closed = [r for r in caplog.records if r.getMessage() == "Background process closed"]
    assert closed[0].exit_code == 0
    assert closed[0].process_name == "preview"


def test_terminate_stops_long_running_process(tmp_path: Path) -> None:
    async def scenario() -> bool:
        handle = await ProcessRunner().launch(
            tmp_path, sys.executable, ["-c", "import time; time.sleep(30)"]
        )
        assert handle.running
        await handle.terminate(timeout_seconds=5.0)
        return handle.running

    assert asyncio.run(scenario()) is False


def test_background_drain_survives_overlong_line(
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    script = "print('x' * 200000); print('tail')"

    async def scenario() -> int | None:
        handle = await ProcessRunner().launch(
            tmp_path, sys.executable, ["-c", script], name="preview"
        )
        await handle.process.wait()
        while handle._tasks:
            await asyncio.gather(*list(handle._tasks))
        return handle.process.returncode

    with caplog.at_level(logging.INFO, logger="autopilot.proc"):
        return_code = asyncio.run(scenario())

    assert return_code == 0
    assert "tail" in [record.getMessage() for record in caplog.records]
