import socket
from pathlib import Path

from click.testing import CliRunner

from folio import __version__
from folio.cli import cli


def create_site(tmp_path: Path) -> Path:
    site = tmp_path / "site"
    (site / "posts").mkdir(parents=True)
    (site / "hello.md").write_text("# Hi\n", encoding="utf-8")
    (site / "secret.md").write_text("---\ndraft: true\n---\n# Secret\n", encoding="utf-8")
    return site


class DummyServer:
    instances = []

    def __init__(self, content_dir, host="127.0.0.1", port=4000, include_drafts=False, **kwargs):
        self.content_dir = content_dir
        self.host = host
        self.port = port
        self.include_drafts = include_drafts
        self.options = kwargs
        self.calls = []
        self.source = type("Source", (), {"root": Path(content_dir)})()
        DummyServer.instances.append(self)

    @property
    def url(self):
        return f"http://{self.host}:{self.port}/"

    def bind(self):
        self.calls.append("bind")

    def start(self):
        self.calls.append("start")


def mock_prompts(monkeypatch, answers):
    responses = iter(answers)

    def mock_question(*args, **kwargs):
        class MockQuestion:
            def ask(self):
                return next(responses)

        return MockQuestion()

    monkeypatch.setattr("folio.cli.questionary.select", mock_question)
    monkeypatch.setattr("folio.cli.questionary.text", mock_question)
    monkeypatch.setattr("folio.cli.questionary.confirm", mock_question)


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_serve_defaults(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    DummyServer.instances = []
    monkeypatch.setattr("folio.server.DevServer", DummyServer)
    monkeypatch.chdir(site)

    result = CliRunner().invoke(cli, ["serve"], catch_exceptions=False)
    assert result.exit_code == 0
    server = DummyServer.instances[0]
    assert server.content_dir == Path.cwd()
    assert server.host == "127.0.0.1"
    assert server.port == 4000
    assert server.include_drafts is False
    assert server.options["watch"] is True
    assert server.options["livereload"] is False
    assert server.calls == ["bind", "start"]
    assert "http://127.0.0.1:4000/" in result.output


def test_serve_flags(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    DummyServer.instances = []
    monkeypatch.setattr("folio.server.DevServer", DummyServer)

    result = CliRunner().invoke(
        cli,
        [
            "serve", str(site), "--port", "5050", "--bind", "0.0.0.0",
            "--drafts", "--no-watch", "--livereload", "--ws-port", "5051",
        ],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    server = DummyServer.instances[0]
    assert server.port == 5050
    assert server.host == "0.0.0.0"
    assert server.include_drafts is True
    assert server.options["watch"] is False
    assert server.options["livereload"] is True
    assert server.options["ws_port"] == 5051


def test_serve_reads_config_file(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    (site / "_config.yml").write_text("port: 5055\ntitle: Notes\n", encoding="utf-8")
    DummyServer.instances = []
    monkeypatch.setattr("folio.server.DevServer", DummyServer)

    result = CliRunner().invoke(cli, ["serve", str(site)], catch_exceptions=False)
    assert result.exit_code == 0
    server = DummyServer.instances[0]
    assert server.port == 5055
    assert server.options["ws_port"] == 5056
    assert server.options["site_title"] == "Notes"


def test_serve_port_in_use_exits_nonzero(tmp_path):
    site = create_site(tmp_path)
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        result = CliRunner().invoke(cli, ["serve", str(site), "--port", str(port), "--no-watch"])
    finally:
        blocker.close()
    assert result.exit_code == 1
    assert "cannot listen on" in result.output


def test_serve_missing_content_dir(tmp_path):
    result = CliRunner().invoke(cli, ["serve", str(tmp_path / "missing"), "--no-watch"])
    assert result.exit_code == 1
    assert "content directory not found" in result.output


def test_serve_invalid_config(tmp_path):
    site = create_site(tmp_path)
    (site / "_config.yml").write_text("port: [oops\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["serve", str(site), "--no-watch"])
    assert result.exit_code == 1
    assert "_config.yml" in result.output


def test_build_command(tmp_path):
    site = create_site(tmp_path)
    out = tmp_path / "out"
    result = CliRunner().invoke(cli, ["build", str(site), "--output", str(out)])
    assert result.exit_code == 0
    assert "Built 1 pages" in result.output
    assert (out / "hello" / "index.html").exists()
    assert not (out / "secret").exists()


def test_build_command_default_output_and_drafts(tmp_path):
    site = create_site(tmp_path)
    result = CliRunner().invoke(cli, ["build", str(site), "--drafts"])
    assert result.exit_code == 0
    assert (site / "_site" / "secret" / "index.html").exists()


def test_build_command_reports_failures(tmp_path):
    site = create_site(tmp_path)
    (site / "broken.md").write_bytes(b"# Broken \xff\n")
    result = CliRunner().invoke(cli, ["build", str(site), "--output", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "Skipped" in result.output
    assert "broken.md" in result.output


def test_list_command(tmp_path):
    site = create_site(tmp_path)
    runner = CliRunner()

    result = runner.invoke(cli, ["list", str(site)])
    assert result.exit_code == 0
    assert "/hello\thello.md" in result.output
    assert "secret" not in result.output

    result = runner.invoke(cli, ["list", str(site), "--drafts"])
    assert "/secret\tsecret.md\t(draft)" in result.output


def test_list_missing_content_dir(tmp_path):
    result = CliRunner().invoke(cli, ["list", str(tmp_path / "missing")])
    assert result.exit_code == 1
    assert "content directory not found" in result.output


def test_new_markdown_draft(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    mock_prompts(monkeypatch, ["posts", "kafka notes", "Markdown (.md)", True])

    result = CliRunner().invoke(cli, ["new", str(site)], catch_exceptions=False)
    assert result.exit_code == 0
    created = site / "posts" / "kafka-notes.md"
    assert created.read_text(encoding="utf-8") == "---\ndraft: true\n---\n\n# Kafka Notes\n\n"


def test_new_asciidoc_in_root(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    mock_prompts(monkeypatch, [". (root)", "Release Plan", "AsciiDoc (.adoc)", False])

    result = CliRunner().invoke(cli, ["new", str(site)], catch_exceptions=False)
    assert result.exit_code == 0
    assert (site / "release-plan.adoc").read_text(encoding="utf-8") == "= Release Plan\n\n"


def test_new_refuses_duplicate_slug(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    mock_prompts(monkeypatch, [". (root)", "Hello", "AsciiDoc (.adoc)", True])

    result = CliRunner().invoke(cli, ["new", str(site)])
    assert result.exit_code != 0
    assert "already exists" in result.output
    assert not (site / "hello.adoc").exists()


def test_new_cancelled(monkeypatch, tmp_path):
    site = create_site(tmp_path)
    mock_prompts(monkeypatch, [None])

    result = CliRunner().invoke(cli, ["new", str(site)])
    assert result.exit_code != 0
