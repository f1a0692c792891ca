"""
CLI tests: the leasehold command against a throwaway SQLite database.
"""

import pytest

from leasehold.cli import build_parser, main


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_sweep_options():
    args = build_parser().parse_args(["sweep", "--watch", "--interval", "2.5"])

    assert args.command == "sweep"
    assert args.watch is True
    assert args.interval == 2.5


def test_init_list_and_sweep(database_url, capsys):
    assert main(["--database-url", database_url, "init-db"]) == 0
    assert "Lease table ready" in capsys.readouterr().out

    assert main(["--database-url", database_url, "list"]) == 0
    assert "0 leases" in capsys.readouterr().out

    assert main(["--database-url", database_url, "sweep"]) == 0
    assert "0 expired leases removed" in capsys.readouterr().out


def test_sweep_without_table_fails(database_url):
    assert main(["--database-url", database_url, "sweep"]) == 1
