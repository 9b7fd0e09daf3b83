"""
Multi-process tests for installs: racing processes and killed installs.

Workers are module-level so they can be started with the fork context.
"""

import multiprocessing
import os
import signal
import time
from unittest.mock import patch

import pytest

from toolpack.core.archive import extract
from toolpack.install.installer import Installer

pytestmark = [pytest.mark.posix, pytest.mark.slow]

WORKERS = 4


@pytest.fixture
def context():
    return multiprocessing.get_context("fork")


@pytest.fixture
def entry(tmp_path, make_entry):
    files = [("solc", b"solc 1.2.0" * 4096), ("yul", b"yul" * 4096)]
    return make_entry(tmp_path / "artifacts", version="1.2.0", files=files)


def install_worker(root, entry, barrier, results):
    barrier.wait()
    try:
        installed = Installer(root).install_entry(entry)
        results.put(("ok", str(installed.install_dir)))
    except Exception as e:
        results.put(("error", f"{type(e).__name__}: {e}"))


def stalled_install_worker(root, entry, extracted):
    def stall_after_extract(data, destination, cancel=None):
        written = extract(data, destination, cancel)
        extracted.set()
        time.sleep(120)
        return written

    with patch("toolpack.install.installer.extract", side_effect=stall_after_extract):
        Installer(root).install_entry(entry)


class TestConcurrentProcesses:
    """Test several processes installing the same key at once."""

    def test_racing_processes_share_one_installation(self, tmp_path, context, entry):
        root = tmp_path / "root"
        barrier = context.Barrier(WORKERS)
        results = context.Queue()
        processes = [
            context.Process(target=install_worker, args=(root, entry, barrier, results))
            for _ in range(WORKERS)
        ]
        for process in processes:
            process.start()
        outcomes = [results.get(timeout=60) for _ in processes]
        for process in processes:
            process.join(timeout=30)

        installer = Installer(root)
        expected = str(installer.install_dir_for(entry.key))
        assert outcomes == [("ok", expected)] * WORKERS
        assert all(process.exitcode == 0 for process in processes)
        assert [record.key for record in installer.list_installed()] == [entry.key]
        assert installer.verify_installed(entry.key).ok
        assert list(installer.layout.staging_dir.iterdir()) == []


class TestKilledInstall:
    """Test recovery after an install process is killed mid-extraction."""

    def test_rerun_after_sigkill(self, tmp_path, context, entry):
        root = tmp_path / "root"
        extracted = context.Event()
        process = context.Process(
            target=stalled_install_worker, args=(root, entry, extracted)
        )
        process.start()
        try:
            assert extracted.wait(timeout=60)
        finally:
            os.kill(process.pid, signal.SIGKILL)
            process.join(timeout=30)

        assert process.exitcode == -signal.SIGKILL
        installer = Installer(root)
        leftovers = list(installer.layout.staging_dir.iterdir())
        assert [path.name.split(".")[-2] for path in leftovers] == [str(process.pid)]
        assert installer.list_installed() == []
        assert not installer.install_dir_for(entry.key).exists()

        installed = installer.install_entry(entry)

        assert (installed.install_dir / "solc").read_bytes() == b"solc 1.2.0" * 4096
        assert installer.verify_installed(entry.key).ok
        assert list(installer.layout.staging_dir.iterdir()) == []
