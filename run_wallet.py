#!/usr/bin/env python3
"""
BlackBook wallet command line.

Usage:
    blackbook-wallet new-mnemonic
    blackbook-wallet address "<24 words>"          # or: address --seed <hex>
    blackbook-wallet register alice                # prints the new mnemonic once
    blackbook-wallet login alice
    blackbook-wallet balance L1_...
    blackbook-wallet transfer alice L1_... 25
    blackbook-wallet recovery-status alice

Passwords are read with getpass, or from BLACKBOOK_PASSWORD when set.
Service URLs come from --config / BLACKBOOK_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import getpass
import json
import logging
import os
import sys

from blackbook_wallet.config import WalletSDKConfig, load_config
from blackbook_wallet.errors import WalletError
from blackbook_wallet.keys import CHAIN_L1, CHAIN_L2, derive_address, mnemonic_to_keypair, seed_to_keypair
from blackbook_wallet.logging_config import setup_logging
from blackbook_wallet.mnemonic_codec import generate_mnemonic, normalize_mnemonic, validate_mnemonic
from blackbook_wallet.session import WalletSessionManager

logger = logging.getLogger("blackbook_cli")


def _read_password(prompt: str = "Password: ") -> str:
    return os.environ.get("BLACKBOOK_PASSWORD") or getpass.getpass(prompt)


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


# ===================================================================
#  Commands
# ===================================================================

async def cmd_new_mnemonic(args, cfg: WalletSDKConfig) -> int:
    print(generate_mnemonic())
    return 0


async def cmd_address(args, cfg: WalletSDKConfig) -> int:
    if args.seed:
        keypair = seed_to_keypair(bytes.fromhex(args.seed))
    else:
        phrase = " ".join(args.mnemonic)
        if not validate_mnemonic(phrase):
            print("error: mnemonic failed BIP-39 validation", file=sys.stderr)
            return 2
        keypair = mnemonic_to_keypair(normalize_mnemonic(phrase), args.passphrase)
    try:
        _print({
            "public_key": keypair.public_key_hex,
            "l1_address": derive_address(keypair.public_key, CHAIN_L1),
            "l2_address": derive_address(keypair.public_key, CHAIN_L2),
        })
    finally:
        keypair.destroy()
    return 0


async def cmd_register(args, cfg: WalletSDKConfig) -> int:
    password = _read_password()
    if not os.environ.get("BLACKBOOK_PASSWORD") and password != getpass.getpass("Repeat: "):
        print("error: passwords do not match", file=sys.stderr)
        return 2
    mnemonic = generate_mnemonic()
    async with WalletSessionManager(config=cfg) as wallet:
        result = await wallet.register(args.username, password, mnemonic)
    print("Write these words down. They are the only way back into this wallet:\n")
    print(f"  {mnemonic}\n")
    _print(result)
    return 0


async def cmd_login(args, cfg: WalletSDKConfig) -> int:
    async with WalletSessionManager(config=cfg) as wallet:
        result = await wallet.login(args.username, _read_password())
        result["l2_address"] = wallet.l2_address
    _print(result)
    return 0


async def cmd_balance(args, cfg: WalletSDKConfig) -> int:
    async with WalletSessionManager(config=cfg) as wallet:
        _print(await wallet.get_balance_for(args.address))
    return 0


async def cmd_transfer(args, cfg: WalletSDKConfig) -> int:
    async with WalletSessionManager(config=cfg) as wallet:
        if args.test_account:
            wallet.init_from_test_account(args.username)
        else:
            await wallet.login(args.username, _read_password())
        _print(await wallet.transfer(args.to, args.amount))
    return 0


async def cmd_recovery_status(args, cfg: WalletSDKConfig) -> int:
    async with WalletSessionManager(config=cfg) as wallet:
        needs = await wallet.check_recovery_status(args.username)
    _print({"username": args.username, "needs_recovery": needs})
    return 0


COMMANDS = {
    "new-mnemonic": cmd_new_mnemonic,
    "address": cmd_address,
    "register": cmd_register,
    "login": cmd_login,
    "balance": cmd_balance,
    "transfer": cmd_transfer,
    "recovery-status": cmd_recovery_status,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="blackbook-wallet", description="BlackBook Wallet")
    p.add_argument("--config", default=None, help="Path to blackbook.toml config file")
    p.add_argument("--log-level", default=None, help="Override logging level")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("new-mnemonic", help="Generate a fresh 24-word mnemonic")

    addr = sub.add_parser("address", help="Show the addresses for a mnemonic or seed")
    addr.add_argument("mnemonic", nargs="*", help="Mnemonic words")
    addr.add_argument("--seed", default=None, help="32-byte seed as hex instead of a mnemonic")
    addr.add_argument("--passphrase", default="", help="Optional BIP-39 passphrase")

    reg = sub.add_parser("register", help="Create a new account")
    reg.add_argument("username")

    login = sub.add_parser("login", help="Log in and show the wallet address")
    login.add_argument("username")

    bal = sub.add_parser("balance", help="Public balance lookup")
    bal.add_argument("address")

    tx = sub.add_parser("transfer", help="Log in, sign and send a transfer")
    tx.add_argument("username", help="Account name (or test account name with --test-account)")
    tx.add_argument("to")
    tx.add_argument("amount", type=float)
    tx.add_argument("--test-account", action="store_true",
                    help="Use a built-in development account instead of logging in")

    rs = sub.add_parser("recovery-status", help="Check whether an account needs recovery")
    rs.add_argument("username")
    return p


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Load config (TOML + env overrides)
    cfg = load_config(args.config)
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    if args.command == "address" and not args.seed and not args.mnemonic:
        print("error: give a mnemonic or --seed", file=sys.stderr)
        return 2

    try:
        return await COMMANDS[args.command](args, cfg)
    except (WalletError, ValueError) as exc:
        logger.debug("command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


def main_sync():
    """Synchronous entry point for console_scripts."""
    code = 0
    with contextlib.suppress(KeyboardInterrupt):
        code = asyncio.run(main())
    raise SystemExit(code)


if __name__ == "__main__":
    main_sync()
