def test_mode_command(app):
    result = app.test_cli_runner().invoke(args=["faultline", "mode"])

    assert result.exit_code == 0
    assert "mode: development" in result.output
    assert "strict mode: False" in result.output


def test_log_and_logs_commands(app, log_dir):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["faultline", "log", "cache warmed", "--priority", "info"])
    assert result.exit_code == 0
    assert "Logged to info.log" in result.output
    assert (log_dir / "info.log").exists()

    result = runner.invoke(args=["faultline", "logs", "--priority", "info", "-n", "5"])
    assert result.exit_code == 0
    assert "cache warmed" in result.output


def test_logs_without_entries(app):
    result = app.test_cli_runner().invoke(args=["faultline", "logs"])
    assert result.exit_code == 0
    assert "No entries in exception.log." in result.output


def test_log_without_directory_fails(make_app):
    app = make_app(FAULTLINE_MODE="development", FAULTLINE_LOG_DIRECTORY="")
    result = app.test_cli_runner().invoke(args=["faultline", "log", "hello"])
    assert result.exit_code != 0
    assert "Logging directory is not specified." in result.output
