"""Tests for the command line interface (cli.py)."""
import io
from unittest.mock import patch

import pytest

from s3migrate import cli
from s3migrate.services.models import MigrationState


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0 bytes"), (512, "512.00 bytes"), (1536, "1.50 KB"), (5 * 1024 ** 3, "5.00 GB")],
)
def test_format_bytes(size, expected) -> None:
    assert cli.format_bytes(size) == expected


def test_parser_migrate_options() -> None:
    args = cli.build_parser().parse_args(["migrate", "--dry-run", "no_transfer", "--resume", "--yes"])
    assert args.command == "migrate"
    assert args.dry_run == "no_transfer"
    assert args.resume
    assert args.yes


def test_parser_rejects_unknown_dry_run_mode() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["migrate", "--dry-run", "sometimes"])


def test_parser_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_migrate_with_invalid_config_exits_2(make_settings, capsys) -> None:
    code = cli.main(["migrate", "--yes"], settings=make_settings(S3_BUCKET=""))
    assert code == cli.EXIT_CONFIG
    assert "S3_BUCKET" in capsys.readouterr().err


def test_production_run_needs_confirmation(settings, capsys) -> None:
    with patch("builtins.input", return_value="n"), patch.object(cli, "cmd_migrate") as cmd_migrate:
        code = cli.main(["migrate", "--dry-run", "off"], settings=settings)

    assert code == cli.EXIT_FAILED
    cmd_migrate.assert_not_called()
    assert "Migration aborted." in capsys.readouterr().out


async def test_progress_printer_only_prints_on_change() -> None:
    stream = io.StringIO()
    printer = cli.ProgressPrinter(stream)

    await printer(MigrationState(total=0))
    await printer(MigrationState(total=200, migrated=1, current_file="a"))
    await printer(MigrationState(total=200, migrated=1, failed=0, current_file="b"))
    await printer(MigrationState(total=200, migrated=2, bytes=2048, current_file="c"))

    lines = stream.getvalue().split("\r")[1:]
    assert len(lines) == 2
    assert lines[0].startswith("Progress: 0%")
    assert "2.00 KB" in lines[1]
    assert lines[1].endswith("Current: c")


def test_cleanup_help_says_dry_run_only_reports(capsys) -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["cleanup-previews", "--help"])
    assert "only reports" in " ".join(capsys.readouterr().out.split())


def test_dry_run_cleanup_output_says_would_delete(make_settings, capsys) -> None:
    settings = make_settings(DRY_RUN="full")
    code = cli.main(["cleanup-previews", "--max-age-days", "0"], settings=settings)

    assert code == cli.EXIT_OK
    assert "Dry run: would delete 0 previews" in capsys.readouterr().out
