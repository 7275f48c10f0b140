"""
Tests for run_wallet: the command-line front-end.

Covers:
  - Argument parsing for every sub-command
  - new-mnemonic / address (offline commands)
  - Usage errors and wallet errors map to exit codes
  - balance / transfer / recovery-status against the in-process services
"""

from __future__ import annotations

import json
import logging

import pytest

import run_wallet
from blackbook_wallet.mnemonic_codec import validate_mnemonic
from blackbook_wallet.test_accounts import get_test_account

from fake_services import FakeBlackBookServices

ZERO_MNEMONIC = ["abandon"] * 23 + ["art"]


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _json_out(capsys) -> dict:
    out = capsys.readouterr().out
    return json.loads(out[out.index("{"):])


# ═══════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════

class TestParser:

    def test_every_command_registered(self):
        parser = run_wallet.build_parser()
        for name in run_wallet.COMMANDS:
            argv = {
                "address": [name, "--seed", "00" * 32],
                "balance": [name, "L1_" + "0" * 40],
                "transfer": [name, "alice", "L1_" + "0" * 40, "5"],
                "new-mnemonic": [name],
            }.get(name, [name, "alice"])
            assert parser.parse_args(argv).command == name

    def test_transfer_amount_is_float(self):
        args = run_wallet.build_parser().parse_args(
            ["transfer", "alice", "L1_X", "2.5", "--test-account"],
        )
        assert args.amount == 2.5
        assert args.test_account is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            run_wallet.build_parser().parse_args([])


# ═══════════════════════════════════════════════════════════════════
#  Offline commands
# ═══════════════════════════════════════════════════════════════════

class TestOfflineCommands:

    @pytest.mark.asyncio
    async def test_new_mnemonic(self, capsys):
        assert await run_wallet.main(["new-mnemonic"]) == 0
        phrase = capsys.readouterr().out.strip()
        assert len(phrase.split()) == 24
        assert validate_mnemonic(phrase)

    @pytest.mark.asyncio
    async def test_address_from_seed(self, capsys):
        alice = get_test_account("alice")
        assert await run_wallet.main(["address", "--seed", alice.seed]) == 0
        out = _json_out(capsys)
        assert out == {
            "public_key": alice.public_key,
            "l1_address": alice.l1_address,
            "l2_address": alice.l2_address,
        }

    @pytest.mark.asyncio
    async def test_address_from_mnemonic(self, capsys):
        assert await run_wallet.main(["address", *ZERO_MNEMONIC]) == 0
        out = _json_out(capsys)
        assert out["l1_address"].startswith("L1_")
        assert out["l2_address"] == "L2_" + out["l1_address"][3:]

    @pytest.mark.asyncio
    async def test_passphrase_changes_address(self, capsys):
        await run_wallet.main(["address", *ZERO_MNEMONIC])
        plain = _json_out(capsys)
        await run_wallet.main(["address", *ZERO_MNEMONIC, "--passphrase", "TREZOR"])
        salted = _json_out(capsys)
        assert plain["public_key"] != salted["public_key"]

    @pytest.mark.asyncio
    async def test_bad_mnemonic_exit_code(self, capsys):
        assert await run_wallet.main(["address", *(["abandon"] * 24)]) == 2
        assert "BIP-39" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_address_needs_input(self, capsys):
        assert await run_wallet.main(["address"]) == 2

    @pytest.mark.asyncio
    async def test_short_seed_is_error(self, capsys):
        assert await run_wallet.main(["address", "--seed", "00" * 16]) == 1
        assert capsys.readouterr().err.startswith("error:")


# ═══════════════════════════════════════════════════════════════════
#  Commands that talk to the services
# ═══════════════════════════════════════════════════════════════════

class TestServiceCommands:

    @pytest.mark.asyncio
    async def test_balance(self, capsys, monkeypatch):
        bob = get_test_account("bob")
        async with FakeBlackBookServices() as services:
            services.balances[bob.l1_address] = 42.0
            monkeypatch.setenv("BLACKBOOK_CREDENTIAL_URL", services.url)
            monkeypatch.setenv("BLACKBOOK_LEDGER_URL", services.url)
            assert await run_wallet.main(["balance", bob.l1_address]) == 0
        assert _json_out(capsys)["balance"] == 42.0

    @pytest.mark.asyncio
    async def test_transfer_with_test_account(self, capsys, monkeypatch):
        alice, bob = get_test_account("alice"), get_test_account("bob")
        async with FakeBlackBookServices() as services:
            services.balances[alice.l1_address] = alice.starting_balance
            monkeypatch.setenv("BLACKBOOK_CREDENTIAL_URL", services.url)
            monkeypatch.setenv("BLACKBOOK_LEDGER_URL", services.url)
            code = await run_wallet.main(
                ["transfer", "alice", bob.l1_address, "12.5", "--test-account"],
            )
        assert code == 0
        assert _json_out(capsys)["success"] is True
        assert services.balances[bob.l1_address] == 12.5

    @pytest.mark.asyncio
    async def test_refused_transfer_exit_code(self, capsys, monkeypatch):
        async with FakeBlackBookServices() as services:
            monkeypatch.setenv("BLACKBOOK_CREDENTIAL_URL", services.url)
            monkeypatch.setenv("BLACKBOOK_LEDGER_URL", services.url)
            code = await run_wallet.main(
                ["transfer", "alice", get_test_account("bob").l1_address, "1", "--test-account"],
            )
        assert code == 1
        assert "Insufficient balance" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_recovery_status(self, capsys, monkeypatch):
        async with FakeBlackBookServices() as services:
            monkeypatch.setenv("BLACKBOOK_CREDENTIAL_URL", services.url)
            assert await run_wallet.main(["recovery-status", "nobody"]) == 0
        assert _json_out(capsys) == {"username": "nobody", "needs_recovery": False}
