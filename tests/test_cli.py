import pytest
import yaml
from aiohttp import web

from hping import __version__, cli
from hping.cli import Action, choose_action, run

from fakes import FakeStatusLog


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    # keep pytest's own log handlers on the root logger
    monkeypatch.setattr(cli, "setup_logging", lambda level="WARNING", log_file=None: None)


@pytest.fixture
def write_config(tmp_path):
    def write(**settings) -> str:
        values = {"interval": 0.05, "max_run_time": 0.12, "timeout": 1000, "use_colors": False}
        values.update(settings)
        path = tmp_path / "hping-test.yaml"
        path.write_text(yaml.safe_dump({"default": values}))
        return str(path)

    return write


async def ok(request: web.Request) -> web.Response:
    return web.Response(headers={"Server": "unit"})


# ────────────────────────────────
# Argument handling
# ────────────────────────────────


@pytest.mark.parametrize(
    "first, rest, method, expected",
    [
        (None, [], None, Action("help")),
        ("servers", ["ignored"], None, Action("servers")),
        ("SETTINGS", [], None, Action("settings")),
        ("ping", ["a.test"], None, Action("ping", ["a.test"])),
        ("ping", ["a.test"], "POST", Action("ping", ["a.test"], "POST")),
        ("get", ["a.test", "b.test"], "POST", Action("ping", ["a.test", "b.test"], "GET")),
        ("Head", [], None, Action("ping", [], "HEAD")),
        ("www.a.test", ["b.test"], None, Action("ping", ["www.a.test", "b.test"])),
    ],
)
def test_choose_action(first, rest, method, expected):
    assert choose_action(first, rest, method) == expected


@pytest.mark.asyncio
async def test_no_arguments_prints_help(capsys):
    assert await run([]) == 0
    out = capsys.readouterr().out
    assert "usage: hping [ping|head|get|post]" in out
    assert "Examples:" in out
    assert "hping servers" in out


@pytest.mark.asyncio
async def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        await run(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "argv, message",
    [
        (["ping", "a.test", "-i", "0"], "interval must be a positive number"),
        (["ping", "a.test", "-i", "soon"], "interval must be a positive number"),
        (["a.test", "-m", "put"], "method must be one of HEAD, GET, POST"),
    ],
)
async def test_invalid_options_are_usage_errors(argv, message, capsys, hping_home):
    with pytest.raises(SystemExit) as exc:
        await run(argv)
    assert exc.value.code == 2
    assert message in capsys.readouterr().err


@pytest.mark.asyncio
async def test_ping_without_targets_is_usage_error(capsys, hping_home):
    with pytest.raises(SystemExit) as exc:
        await run(["ping"])
    assert exc.value.code == 2
    assert "no targets given" in capsys.readouterr().err


# ────────────────────────────────
# Informational commands
# ────────────────────────────────


@pytest.mark.asyncio
async def test_servers_lists_groups(capsys, hping_home):
    assert await run(["servers"]) == 0
    out = capsys.readouterr().out
    assert out.startswith(cli.INFO)
    assert "Server groups (set in config):" in out
    assert "example:\n- https://www.example.com" in out
    assert f"usage: {cli.USAGE}" in out
    assert (hping_home / "hping.conf.yaml").is_file()


@pytest.mark.asyncio
async def test_settings_shows_active_file(capsys, hping_home, write_config):
    path = write_config(interval=2)
    assert await run(["settings", "-c", path]) == 0
    out = capsys.readouterr().out
    assert f"Settings from config file: {path}" in out
    assert "interval: 2" in out
    assert "display_in_output:" in out


@pytest.mark.asyncio
async def test_unusable_config_falls_back_to_user_config(capsys, hping_home, tmp_path):
    missing = tmp_path / "missing.yaml"
    assert await run(["settings", "--config", str(missing)]) == 0
    captured = capsys.readouterr()
    assert f'Specified config file "{missing}" could not be used' in captured.err
    assert f"Settings from config file: {hping_home.resolve() / 'hping.conf.yaml'}" in captured.out


@pytest.mark.asyncio
async def test_broken_user_config_exits_with_error(hping_home, caplog):
    hping_home.mkdir(parents=True)
    (hping_home / "hping.conf.yaml").write_text("default:\n  timeout: 0\n")

    assert await run(["settings"]) == 1
    assert "Configuration error" in caplog.text


# ────────────────────────────────
# Pinging
# ────────────────────────────────


@pytest.mark.asyncio
async def test_legacy_invocation_pings_target(capsys, hping_home, write_config, http_server):
    url = await http_server(ok)
    config = write_config()

    assert await run([url, "-c", config]) == 0

    out = capsys.readouterr().out
    assert out.startswith(f"Using config: {config}\n")
    status_lines = [line for line in out.splitlines() if line.startswith("hPING: [UP]")]
    assert 2 <= len(status_lines) <= 3
    assert "(127.0.0.1) code=200 info=OK server=unit time=" in status_lines[0]
    assert "Maximum running time has been reached" in out
    assert f"--- {url} hPING statistics" in out
    assert "UP=100%" in out


@pytest.mark.asyncio
async def test_get_command_uses_get(capsys, hping_home, write_config, http_server):
    methods = []

    async def handler(request: web.Request) -> web.Response:
        methods.append(request.method)
        return web.Response(text="body")

    url = await http_server(handler)
    config = write_config(display_in_output={"type": True, "ip": False, "content_length": True})

    assert await run(["get", url, "--config", config]) == 0

    assert methods and set(methods) == {"GET"}
    out = capsys.readouterr().out
    assert f"hPING: [UP] {url} type=get code=200" in out
    assert "content-length=4" in out


@pytest.mark.asyncio
async def test_method_override_and_interval_flag(capsys, hping_home, write_config, http_server):
    methods = []

    async def handler(request: web.Request) -> web.Response:
        methods.append(request.method)
        return web.Response()

    url = await http_server(handler)
    config = write_config(interval=10, max_run_time=0.25)

    assert await run(["ping", url, "-m", "post", "-i", "0.1", "-c", config]) == 0

    # with the configured 10s interval only one request would fit
    assert 2 <= len(methods) <= 3
    assert set(methods) == {"POST"}


@pytest.mark.asyncio
async def test_unreachable_target_is_down(capsys, hping_home, write_config, unused_port):
    config = write_config(max_run_time=0.05)

    assert await run([f"127.0.0.1:{unused_port}", "-c", config]) == 0

    out = capsys.readouterr().out
    assert f"hPING: [DOWN] http://127.0.0.1:{unused_port}" in out
    assert "error=econnrefused info=connection_refused" in out
    assert "DOWN=100%" in out


@pytest.mark.asyncio
async def test_server_group_is_expanded(capsys, hping_home, write_config, http_server):
    first = await http_server(ok)
    second = await http_server(ok)
    config = write_config(max_run_time=0.05, servers={"local pair": [first, second]})

    assert await run(["local pair", "-c", config]) == 0

    out = capsys.readouterr().out
    assert f"--- {first} hPING statistics" in out
    assert f"--- {second} hPING statistics" in out


@pytest.mark.asyncio
async def test_status_changes_are_logged_when_enabled(capsys, hping_home, write_config, http_server):
    url = await http_server(ok)
    config = write_config(log_status_change=True, log_file="logs/status.log")

    assert await run([url, "-c", config]) == 0

    content = (hping_home / "logs" / "status.log").read_text()
    assert content.count("hPING: [UP]") == 1
    assert f"--- {url} hPING statistics" in content


@pytest.mark.asyncio
async def test_status_log_is_closed_once_after_run(monkeypatch, hping_home, write_config, http_server):
    url = await http_server(ok)
    config = write_config(log_status_change=True)
    status_log = FakeStatusLog()
    monkeypatch.setattr(cli, "create_status_log", lambda log_file, home_dir: status_log)

    assert await run([url, "-c", config]) == 0

    assert status_log.close_calls == 1
    assert any("hPING statistics" in line for line in status_log.lines)


@pytest.mark.asyncio
async def test_status_log_is_closed_when_run_fails_early(monkeypatch, hping_home, write_config):
    config = write_config(log_status_change=True)
    status_log = FakeStatusLog()
    monkeypatch.setattr(cli, "create_status_log", lambda log_file, home_dir: status_log)

    async def fail(self, targets):
        raise RuntimeError("session setup failed")

    monkeypatch.setattr(cli.ShutdownCoordinator, "start", fail)

    with pytest.raises(RuntimeError, match="session setup failed"):
        await run(["a.test", "-c", config])

    assert status_log.close_calls == 1
