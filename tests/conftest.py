"""Shared fixtures built on the fakes in fakes.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeExporter, FakeRpc, FakeServiceControl, RecordingSleep
from jammer.config import JammerConfig
from jammer.pipeline import create_pipeline


@pytest.fixture
def web_root(tmp_path: Path) -> Path:
    """A published tree with two pages and two jams."""
    root = tmp_path / "html"
    jams = root / "jams"
    jams.mkdir(parents=True)
    (root / "index.html").write_text("<html>index</html>")
    (root / "privacy.html").write_text("<html>privacy</html>")
    (jams / "100.jam").write_bytes(b"state at 100")
    (jams / "200.jam").write_bytes(b"state at 200")
    return root


@pytest.fixture
def config(web_root: Path, tmp_path: Path) -> JammerConfig:
    return JammerConfig(
        web_root=web_root,
        node_data_dir=tmp_path / "nockchain",
        poll_interval=0.5,
    )


@pytest.fixture
def control() -> FakeServiceControl:
    return FakeServiceControl()


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def exporter(control: FakeServiceControl) -> FakeExporter:
    fake = FakeExporter()
    fake.control = control
    return fake


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def pipeline(config, control, rpc, exporter, sleep):
    return create_pipeline(
        config,
        control=control,
        rpc=rpc,
        export_primitive=exporter,
        sleep=sleep,
    )
