# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal, InvalidOperation

import requests

from protocol.config.params import DECIMALS, DENOM
from protocol.types.request import RequestType, SignedRequest
from .keystore import KeyStore, KEYSTORE_DIR

DEFAULT_NODE = "http://localhost:8000"


def get_node_url(args):
    return args.node or os.environ.get("STAKEPOOL_NODE", DEFAULT_NODE)


def to_units(amount: str, raw: bool = False) -> int:
    """Converts a token amount ("1.5") to integer base units."""
    try:
        value = Decimal(amount)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}")
    if not raw:
        value = value * (10 ** DECIMALS)
    if value != value.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {DECIMALS} decimals")
    return int(value)


def format_units(units) -> str:
    value = Decimal(int(units)) / (10 ** DECIMALS)
    return f"{value.normalize():f} {DENOM}"


def _request(method: str, url: str, **kwargs) -> dict:
    try:
        resp = requests.request(method, url, timeout=10, **kwargs)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)

    if resp.status_code != 200:
        try:
            body = resp.json()
            print(f"Error [{body.get('code', resp.status_code)}]: {body.get('detail', resp.text)}")
        except ValueError:
            print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()


def _amount_arg(args) -> int:
    try:
        return to_units(args.amount, raw=args.raw)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


# --- Query Commands ---
def cmd_query_status(args):
    data = _request("GET", f"{get_node_url(args)}/status")
    print(f"Network:       {data['network']}")
    print(f"Pool address:  {data['pool_address']}")
    print(f"Total staked:  {format_units(data['total_staked'])}")
    print(f"Reward rate:   {data['reward_rate_per_second']} units/s")
    print(f"Stakers:       {data['staker_count']}")
    print(f"Vault balance: {format_units(data['vault_balance'])}")
    print(f"Operator:      {data['operator']} (rate updates restricted: {data['restrict_rate_updates']})")
    print(f"State root:    {data['state_root']}")


def cmd_query_staked(args):
    data = _request("GET", f"{get_node_url(args)}/staked")
    print(f"Total staked: {format_units(data['total_staked'])}")


def cmd_query_balance(args):
    data = _request("GET", f"{get_node_url(args)}/balance/{args.address}")
    print(f"Staked: {format_units(data['staked'])}")
    print(f"Wallet: {format_units(data['wallet'])}")
    print(f"Nonce:  {data['nonce']}")


def cmd_query_history(args):
    params = {"limit": args.limit}
    if args.account:
        params["account"] = args.account
    data = _request("GET", f"{get_node_url(args)}/history", params=params)
    print(json.dumps(data["operations"], indent=2))


# --- Key Commands ---
def cmd_keys_add(args):
    try:
        data = KeyStore(args.keystore).create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Created key '{data['name']}': {data['address']}")


def cmd_keys_import(args):
    try:
        data = KeyStore(args.keystore).import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Imported key '{data['name']}': {data['address']}")


def cmd_keys_list(args):
    for key in KeyStore(args.keystore).list_keys():
        print(f"{key['name']:<16} {key['address']}")


def cmd_keys_show(args):
    data = KeyStore(args.keystore).get_key(args.name)
    if not data:
        print(f"Key '{args.name}' not found")
        sys.exit(1)
    print(f"Name:       {data['name']}")
    print(f"Address:    {data['address']}")
    print(f"Public key: {data['public_key']}")


# --- Tx Commands ---
def _signed(args, request_type: RequestType, amount: int, to_address: str = None) -> dict:
    """Builds a request from key `args.key`, signed with its current nonce."""
    keys = KeyStore(args.keystore)
    key = keys.get_key(args.key)
    if not key:
        print(f"Key '{args.key}' not found")
        sys.exit(1)

    nonce = _request("GET", f"{get_node_url(args)}/balance/{key['address']}")["nonce"]
    req = SignedRequest(
        request_type=request_type,
        from_address=key["address"],
        to_address=to_address,
        amount=amount,
        nonce=nonce,
    )
    req.sign(keys.private_key(args.key))
    return req.model_dump(mode="json")


def cmd_tx_deposit(args):
    amount = _amount_arg(args)
    body = _signed(args, RequestType.DEPOSIT, amount)
    print(f"Depositing {format_units(amount)} for {body['from_address']}...")
    data = _request("POST", f"{get_node_url(args)}/deposit", json=body)
    print(f"Success! Staked balance: {format_units(data['balance'])}")


def cmd_tx_withdraw(args):
    amount = _amount_arg(args)
    body = _signed(args, RequestType.WITHDRAW, amount)
    print(f"Withdrawing {format_units(amount)} for {body['from_address']}...")
    data = _request("POST", f"{get_node_url(args)}/withdraw", json=body)
    print(f"Success! Staked balance: {format_units(data['balance'])}")


def cmd_tx_set_rate(args):
    body = _signed(args, RequestType.UPDATE_REWARD_RATE, args.rate)
    data = _request("POST", f"{get_node_url(args)}/reward-rate", json=body)
    print(f"Reward rate changed: {data['old_rate']} -> {data['new_rate']} units/s")


# --- Token Commands ---
def cmd_token_approve(args):
    amount = _amount_arg(args)
    body = _signed(args, RequestType.TOKEN_APPROVE, amount, to_address=args.spender)
    data = _request("POST", f"{get_node_url(args)}/token/approve", json=body)
    print(f"Allowance {data['owner']} -> {data['spender']}: {format_units(data['allowance'])}")


def cmd_token_transfer(args):
    amount = _amount_arg(args)
    body = _signed(args, RequestType.TOKEN_TRANSFER, amount, to_address=args.recipient)
    _request("POST", f"{get_node_url(args)}/token/transfer", json=body)
    print(f"Sent {format_units(amount)} from {body['from_address']} to {args.recipient}")


def _add_amount(parser):
    parser.add_argument("amount", help=f"Amount in {DENOM}")
    parser.add_argument("--raw", action="store_true", help="Amount is given in base units")


def main():
    parser = argparse.ArgumentParser(prog="stakepool", description="StakePool Client CLI")
    parser.add_argument("--node", help=f"Node URL (default: $STAKEPOOL_NODE or {DEFAULT_NODE})")
    parser.add_argument("--keystore", default=KEYSTORE_DIR, help=f"Key directory (default: {KEYSTORE_DIR})")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage signing keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Create a new key")
    pk_add.add_argument("name")

    pk_imp = sp_keys.add_parser("import", help="Import a hex private key")
    pk_imp.add_argument("name")
    pk_imp.add_argument("private_key", help="32-byte private key (hex)")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show a key's address and public key")
    pk_show.add_argument("name")

    # query
    p_query = subparsers.add_parser("query", help="Query pool state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Pool summary")
    sp_query.add_parser("staked", help="Total staked value as of now")

    pq_bal = sp_query.add_parser("balance", help="Staked and wallet balance of an account")
    pq_bal.add_argument("address", help="Account address")

    pq_hist = sp_query.add_parser("history", help="Applied operations, newest first")
    pq_hist.add_argument("--account", help="Only operations of this account")
    pq_hist.add_argument("--limit", type=int, default=20)

    # tx
    p_tx = subparsers.add_parser("tx", help="Submit pool operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_dep = sp_tx.add_parser("deposit", help="Stake tokens (approve the pool first)")
    _add_amount(pt_dep)
    pt_dep.add_argument("--from", dest="key", required=True, help="Key of the depositing account")

    pt_wd = sp_tx.add_parser("withdraw", help="Withdraw stake and accrued rewards")
    _add_amount(pt_wd)
    pt_wd.add_argument("--from", dest="key", required=True, help="Key of the withdrawing account")

    pt_rate = sp_tx.add_parser("set-rate", help="Change the reward rate (base units per second)")
    pt_rate.add_argument("rate", type=int, help="New rate")
    pt_rate.add_argument("--from", dest="key", required=True, help="Operator key")

    # token
    p_tok = subparsers.add_parser("token", help="Reference token ledger")
    sp_tok = p_tok.add_subparsers(dest="subcommand")

    ptk_app = sp_tok.add_parser("approve", help="Allow a spender (usually the pool) to pull tokens")
    ptk_app.add_argument("spender", help="Spender address")
    _add_amount(ptk_app)
    ptk_app.add_argument("--from", dest="key", required=True, help="Key of the owner")

    ptk_tr = sp_tok.add_parser("transfer", help="Send tokens")
    ptk_tr.add_argument("recipient", help="Recipient address")
    _add_amount(ptk_tr)
    ptk_tr.add_argument("--from", dest="key", required=True, help="Key of the sender")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "staked": cmd_query_staked(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        elif args.subcommand == "history": cmd_query_history(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "deposit": cmd_tx_deposit(args)
        elif args.subcommand == "withdraw": cmd_tx_withdraw(args)
        elif args.subcommand == "set-rate": cmd_tx_set_rate(args)
        else: p_tx.print_help()

    elif args.command == "token":
        if args.subcommand == "approve": cmd_token_approve(args)
        elif args.subcommand == "transfer": cmd_token_transfer(args)
        else: p_tok.print_help()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
