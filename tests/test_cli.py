"""
Tests for the votenode CLI.
"""

from __future__ import annotations

import asyncio

import pytest
from click.testing import CliRunner

from votenode import __version__, config
from votenode.census import Census
from votenode.cli import cli
from votenode.db import SQLiteStore
from votenode.types import CensusProof, VotePackage

from fakes import make_identity


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def census_db(tmp_path):
    return str(tmp_path / "cli-census.db")


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


class TestCensusCommands:
    def test_add_and_info(self, runner, census_db):
        a, b = make_identity(1).hex(), make_identity(2).hex()
        result = runner.invoke(cli, ["census", "add", f"{a}:5", b, "--census-db", census_db])
        assert result.exit_code == 0
        assert "Added 2 identities" in result.output

        result = runner.invoke(cli, ["census", "info", "--census-db", census_db])
        assert result.exit_code == 0
        assert "Size:" in result.output
        assert Census(census_db).root().hex() in result.output

    def test_add_reports_duplicates(self, runner, census_db):
        pk = make_identity(1).hex()
        runner.invoke(cli, ["census", "add", pk, "--census-db", census_db])
        result = runner.invoke(cli, ["census", "add", pk, "--census-db", census_db])
        assert result.exit_code == 0
        assert "Added 0 identities" in result.output
        assert "already enrolled" in result.output

    def test_add_rejects_bad_input(self, runner, census_db):
        result = runner.invoke(cli, ["census", "add", "zz", "--census-db", census_db])
        assert result.exit_code != 0

        pk = make_identity(1).hex()
        result = runner.invoke(cli, ["census", "add", f"{pk}:lots", "--census-db", census_db])
        assert result.exit_code != 0

        result = runner.invoke(cli, ["census", "add", "abcd", "--census-db", census_db])
        assert result.exit_code == 1
        assert Census(census_db).size() == 0

    def test_close_then_add_fails(self, runner, census_db):
        pk = make_identity(1).hex()
        runner.invoke(cli, ["census", "add", pk, "--census-db", census_db])

        result = runner.invoke(cli, ["census", "close", "--census-db", census_db])
        assert result.exit_code == 0
        assert "Census closed" in result.output

        result = runner.invoke(
            cli, ["census", "add", make_identity(2).hex(), "--census-db", census_db]
        )
        assert result.exit_code == 1
        assert "closed" in result.output
        assert Census(census_db).size() == 1

    def test_proof(self, runner, census_db):
        pk = make_identity(1)
        Census(census_db).add_identities([make_identity(0), pk], [1, 9])

        result = runner.invoke(cli, ["census", "proof", pk.hex(), "--census-db", census_db])
        assert result.exit_code == 0
        assert "index:  1" in result.output
        assert "weight: 9" in result.output

        result = runner.invoke(
            cli, ["census", "proof", make_identity(5).hex(), "--census-db", census_db]
        )
        assert result.exit_code == 1
        assert "✗" in result.output

    def test_default_census_path_from_env(self, runner, tmp_path):
        result = runner.invoke(cli, ["census", "add", make_identity(1).hex()])
        assert result.exit_code == 0
        assert (tmp_path / "home" / "census.db").exists()


class TestStoreCommands:
    @pytest.fixture
    def db_path(self, tmp_path):
        path = tmp_path / "cli.db"

        async def _seed():
            async with SQLiteStore(path) as store:
                await store.store_process(11, b"\x01" * 32, 3, 50, 900, 10, 1, 1)
                await store.store_vote_package(
                    11,
                    VotePackage(
                        signature=b"\x02" * 64,
                        census_proof=CensusProof(
                            index=0,
                            identity=make_identity(0),
                            weight=4,
                            merkle_proof=b"\x00" * 8,
                        ),
                        vote=b"yes",
                    ),
                )

        asyncio.run(_seed())
        return str(path)

    def test_process_list(self, runner, db_path):
        result = runner.invoke(cli, ["process", "list", "--db", db_path])
        assert result.exit_code == 0
        assert "11" in result.output
        assert "ON" in result.output

    def test_process_list_empty(self, runner, tmp_path):
        result = runner.invoke(cli, ["process", "list", "--db", str(tmp_path / "empty.db")])
        assert result.exit_code == 0
        assert "No processes" in result.output

    def test_votes_list(self, runner, db_path):
        result = runner.invoke(cli, ["votes", "list", "11", "--db", db_path])
        assert result.exit_code == 0
        assert "1 vote packages" in result.output


def test_sync_requires_contract(runner, monkeypatch):
    monkeypatch.delenv("VOTENODE_CONTRACT_ADDR", raising=False)
    config.reload()
    result = runner.invoke(cli, ["sync"])
    assert result.exit_code == 2
    assert "--contract" in result.output
