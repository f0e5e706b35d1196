import logging
from unittest import mock

import pytest

import spritewrite_server


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def fake_app(monkeypatch):
    app = mock.Mock()
    monkeypatch.setattr(spritewrite_server, "create_app", mock.Mock(return_value=app))
    return app


@pytest.fixture
def root_level():
    root = logging.getLogger()
    level = root.level
    yield root
    root.setLevel(level)


def test_bad_log_level_exits_with_status_1(monkeypatch, fake_app):
    monkeypatch.setenv("SW_LOG_LEVEL", "LOUD")

    with pytest.raises(SystemExit) as exc_info:
        spritewrite_server.main([])

    assert exc_info.value.code == 1
    fake_app.run.assert_not_called()


def test_malformed_config_file_exits_with_status_1(isolated_cwd, fake_app):
    (isolated_cwd / "spritewrite.yaml").write_text("bind: [unclosed\n")

    with pytest.raises(SystemExit) as exc_info:
        spritewrite_server.main([])

    assert exc_info.value.code == 1


def test_log_level_from_dotenv_is_applied(isolated_cwd, fake_app, root_level):
    (isolated_cwd / ".env").write_text("SW_LOG_LEVEL=warning\n")

    spritewrite_server.main(["--bind", "127.0.0.1:8123"])

    assert root_level.level == logging.WARNING
    fake_app.run.assert_called_once_with(host="127.0.0.1", port=8123, threaded=True)
