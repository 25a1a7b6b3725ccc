import json
import os
import signal

import pytest

from tile_mirror import mirror
from tile_mirror.core.tile_mirror_manager import (
    DATASTORE_ENV_VAR,
    NEW_WRITERINFO_ENV_VAR,
    WRITERINFO_ENV_VAR,
    TileMirrorManager,
)
from tile_mirror.services.config_service import CONFIG_ENV_VAR
from tile_mirror.core.cancellation import CancellationToken
from tile_mirror.models.tile_server import TileDelivery
from tile_mirror.services.content_store import LocalContentStore
from tile_mirror.exceptions.tile_mirror_exceptions import ConfigurationError

from doubles import DummySession

PLANET_ONLY = json.dumps({
    "urlTemplate": "http://tiles.example.com/{z}/{x}/{y}.png",
    "planetMaxZoom": 2,
    "backoffUnit": 0,
})


class TestTileMirrorManager:

    def test_plan_prints_counts(self, capsys):
        manager = TileMirrorManager(environ={CONFIG_ENV_VAR: PLANET_ONLY})

        assert manager.run_from_command_line(["--plan"]) is None

        out = capsys.readouterr().out
        assert "z=2" in out
        assert "Total tiles: 21" in out

    def test_new_mirror_run(self, tmp_path, capsys):
        session = DummySession()
        manager = TileMirrorManager(environ={CONFIG_ENV_VAR: PLANET_ONLY}, session=session)

        result = manager.run_from_command_line(["--datastore", str(tmp_path), "--new-writer-info"])

        assert result.tiles_fetched == 21
        assert result.layers_completed == 3
        assert len(session.calls) == 21
        out = capsys.readouterr().out
        assert "Entrypoint:" in out
        writer_info = [line.split(": ", 1)[1] for line in out.splitlines() if "WriterInfo:" in line][0]

        with LocalContentStore(str(tmp_path), writer_info) as store:
            assert len(store.list_entries()) == 21

    def test_continue_existing_mirror_from_environment(self, tmp_path):
        with LocalContentStore(str(tmp_path)) as store:
            writer_info = store.root_writer_info()

        environ = {
            CONFIG_ENV_VAR: PLANET_ONLY,
            DATASTORE_ENV_VAR: str(tmp_path),
            WRITERINFO_ENV_VAR: writer_info,
        }
        manager = TileMirrorManager(environ=environ, session=DummySession())

        result = manager.run_from_command_line([])

        assert result.tiles_fetched == 21

    def test_missing_datastore(self):
        manager = TileMirrorManager(environ={CONFIG_ENV_VAR: PLANET_ONLY})
        with pytest.raises(ConfigurationError, match="Store location"):
            manager.run_from_command_line(["--new-writer-info"])

    def test_missing_writer_info(self, tmp_path):
        manager = TileMirrorManager(environ={CONFIG_ENV_VAR: PLANET_ONLY})
        with pytest.raises(ConfigurationError, match="Writer info"):
            manager.run_from_command_line(["--datastore", str(tmp_path)])


def test_main_exits_non_zero_on_error(monkeypatch, capsys):
    monkeypatch.setenv(CONFIG_ENV_VAR, PLANET_ONLY)
    monkeypatch.delenv(DATASTORE_ENV_VAR, raising=False)

    with pytest.raises(SystemExit) as excinfo:
        mirror.main(["--new-writer-info"])

    assert excinfo.value.code == 1
    assert "Store location" in capsys.readouterr().err


class InterruptingFetcher:
    """Stores the first tile, then delivers SIGINT to the running process"""

    def __init__(self, server, store, **kwargs):
        self.server = server
        self.store = store

    def fetch(self, coordinate, token):
        url = self.server.get_tile_url(coordinate.z, coordinate.x, coordinate.y)
        content_id, mime_type = self.store.set_entry_file(
            [str(coordinate.z), str(coordinate.x), f"{coordinate.y}.png"], [b"tile"])
        os.kill(os.getpid(), signal.SIGINT)
        return TileDelivery(coordinate, url, content_id, mime_type, attempts=1)


class TestSignalCancellation:

    def test_sigint_cancels_token_and_handlers_are_restored(self):
        previous = signal.getsignal(signal.SIGINT)
        token = CancellationToken()

        with TileMirrorManager.cancel_on_signals(token):
            os.kill(os.getpid(), signal.SIGINT)

        assert token.is_cancelled
        assert token.reason == f"signal {int(signal.SIGINT)}"
        assert signal.getsignal(signal.SIGINT) is previous

    def test_sigterm_cancels_token(self):
        token = CancellationToken()

        with TileMirrorManager.cancel_on_signals(token):
            os.kill(os.getpid(), signal.SIGTERM)

        assert token.is_cancelled

    def test_main_exits_130_when_interrupted(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv(CONFIG_ENV_VAR, PLANET_ONLY)
        monkeypatch.setenv(DATASTORE_ENV_VAR, str(tmp_path))
        monkeypatch.setenv(NEW_WRITERINFO_ENV_VAR, "1")
        monkeypatch.setattr("tile_mirror.core.tile_mirror_manager.TileFetchService", InterruptingFetcher)
        previous = signal.getsignal(signal.SIGINT)

        with pytest.raises(SystemExit) as excinfo:
            mirror.main([])

        assert excinfo.value.code == mirror.EXIT_CANCELLED == 130
        captured = capsys.readouterr()
        assert "interrupted" in captured.err
        assert signal.getsignal(signal.SIGINT) is previous

        # zoom 0 is a single tile, so it completes and is committed before the stop
        writer_info = [line.split(": ", 1)[1] for line in captured.out.splitlines()
                       if "WriterInfo:" in line][0]
        with LocalContentStore(str(tmp_path), writer_info) as store:
            assert store.list_entries() == ["0/0/0.png"]
