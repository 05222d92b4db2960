# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import json
import logging
import os
import sys

from prometheus_client import generate_latest

from ..engine.core.clock import ManualClock
from ..engine.core.params import PARAM_EVENTS
from ..engine.core.system import StakingSystem
from ..engine.observability import metrics_registry, update_metrics
from ..protocol.config.params import CURRENT_NETWORK, DECIMALS, DENOM, get_network
from ..protocol.types.common import ProtocolError

DEFAULT_DB = "centralex.db"


def get_db_path(args):
    return args.db or os.environ.get("CENX_DB", DEFAULT_DB)


def open_system(args) -> StakingSystem:
    config = get_network(args.network) if args.network else CURRENT_NETWORK
    clock = ManualClock(args.time) if args.time is not None else None
    return StakingSystem(get_db_path(args), clock=clock, config=config)


def fmt_amount(amount: int) -> str:
    return f"{amount} ({amount / 10**DECIMALS} {DENOM})"


# --- Init ---
def cmd_init(system, args):
    system.initialize(args.owner)
    cfg = system.config
    print(f"Initialized {cfg.network_id} deployment, owner {args.owner}")
    print(f"Ledger address: {system.ledger.address}")
    print(f"Token: {system.token.name} ({system.token.symbol})")


# --- Token Commands ---
def cmd_token_mint(system, args):
    system.token.mint(args.account, args.amount)
    print(f"Minted {fmt_amount(args.amount)} to {args.account}")


def cmd_token_approve(system, args):
    spender = args.spender or system.ledger.address
    system.token.approve(args.owner, spender, args.amount)
    print(f"{args.owner} approved {spender} for {args.amount}")


def cmd_token_balance(system, args):
    print(f"Balance: {fmt_amount(system.token.balance_of(args.account))}")


# --- Staking Commands ---
def cmd_stake_deposit(system, args):
    if args.id:
        system.ledger.deposit_to(args.sender, args.id, args.amount)
        print(f"Added {args.amount} to deposit {args.id}")
    else:
        deposit_id = system.ledger.deposit(args.sender, args.amount)
        print(f"Deposit {deposit_id} created with {args.amount}")


def cmd_stake_withdraw(system, args):
    if args.requested:
        paid = system.ledger.make_requested_withdrawal(args.sender, args.id)
    else:
        paid = system.ledger.make_forced_withdrawal(args.sender, args.id)
    print(f"Withdrawn: {fmt_amount(paid)}")


def cmd_stake_request(system, args):
    system.ledger.request_withdrawal(args.sender, args.id)
    print(f"Withdrawal of deposit {args.id} requested")


def cmd_stake_distribute(system, args):
    system.ledger.distribute(args.sender, args.amount)
    print(f"Distributed {args.amount}, reward factor now {system.ledger.reward_factor}")


def cmd_stake_set_param(system, args):
    system.ledger.set_param(args.sender, args.name, args.value)
    pending = system.ledger.parameters()[args.name]
    print(f"{args.name} = {args.value} scheduled, effective at {pending['effective_at']}")


def cmd_stake_balance(system, args):
    ledger = system.ledger
    last_id = ledger.last_deposit_id(args.account)
    print(f"Total staked by {args.account}: {fmt_amount(ledger.total_user_balance(args.account))}")
    if not last_id:
        return
    print(f"{'Id':<5} {'Amount':<25} {'Date':<12} {'Reward':<25} {'Requested'}")
    print("-" * 80)
    for deposit_id in range(1, last_id + 1):
        print(
            f"{deposit_id:<5} {ledger.balance_of(args.account, deposit_id):<25} "
            f"{ledger.deposit_date(args.account, deposit_id):<12} "
            f"{ledger.pending_reward(args.account, deposit_id):<25} "
            f"{ledger.withdrawal_request_date(args.account, deposit_id) or '-'}"
        )


def cmd_stake_info(system, args):
    ledger = system.ledger
    info = {
        "owner": ledger.owner,
        "address": ledger.address,
        "paused": ledger.paused,
        "reward_maturity_duration": ledger.reward_maturity_duration,
        "rewards": ledger.rewards.model_dump(),
        "parameters": ledger.parameters(),
    }
    print(json.dumps(info, indent=2))


def cmd_stake_pause(system, args):
    if args.subcommand == "pause":
        system.ledger.pause(args.sender)
    else:
        system.ledger.unpause(args.sender)
    print(f"Staking {'paused' if system.ledger.paused else 'unpaused'}")


# --- Governance Commands ---
GOV_TRANSITIONS = {
    "open-draft": "open_proposal_draft",
    "close-draft": "close_proposal_draft",
    "open-voting": "open_voting",
    "close-voting": "close_voting",
    "open-calculation": "open_calculation",
    "calculate": "calculate_votes",
    "close-calculation": "close_calculation",
}


def cmd_gov_transition(system, args):
    getattr(system.governance, GOV_TRANSITIONS[args.subcommand])(args.sender)
    print(f"Governance phase: {system.governance.phase.name}")


def cmd_gov_add(system, args):
    system.governance.add_proposal(args.sender, args.id, args.title)
    print(f"Proposal {args.id} added")


def cmd_gov_proposal_status(system, args):
    gov = system.governance
    if args.subcommand == "pause-proposal":
        gov.pause_proposal(args.sender, args.id)
    elif args.subcommand == "resume-proposal":
        gov.resume_proposal(args.sender, args.id)
    else:
        gov.cancel_proposal(args.sender, args.id)
    print(f"Proposal {args.id}: {gov.get_proposal_status(args.id).name}")


def cmd_gov_vote(system, args):
    system.governance.vote(args.sender, args.id)
    print(f"{args.sender} voted for proposal {args.id}")


def cmd_gov_pause(system, args):
    if args.subcommand == "pause":
        system.governance.pause(args.sender)
    else:
        system.governance.unpause(args.sender)
    print(f"Governance {'paused' if system.governance.paused else 'unpaused'}")


def cmd_gov_status(system, args):
    gov = system.governance
    print(f"Phase: {gov.phase.name}")
    print(f"Session: {gov.state.session} (base index {gov.base_index})")
    print(f"Proposals: {gov.get_current_proposals_count()} current, "
          f"{gov.get_active_proposals_count()} active, {gov.get_paused_proposals_count()} paused")
    proposals = gov.get_proposals()
    if not proposals:
        return
    print(f"{'Id':<8} {'Status':<10} {'Votes':<6} {'Title'}")
    print("-" * 60)
    for p in proposals:
        print(f"{p.id:<8} {p.status.name:<10} {p.vote_count:<6} {p.title}")


def cmd_gov_result(system, args):
    print(f"Proposal {args.id}: {system.governance.get_result(args.id)} vote(s)")


# --- Events ---
def cmd_events_list(system, args):
    events = system.events.history(name=args.name, source=args.source)
    if args.limit:
        events = events[-args.limit:]
    for event in events:
        print(f"#{event.seq:<5} {event.timestamp} {event.source:<11} {event.name:<32} {json.dumps(event.data)}")


# --- Metrics ---
def cmd_metrics(system, args):
    update_metrics(system)
    print(generate_latest(metrics_registry).decode("utf-8"), end="")


def run(args, parser) -> None:
    system = open_system(args)
    try:
        if args.command == "init":
            cmd_init(system, args)
            return

        system.require_initialized()
        handler = None
        if args.command == "token":
            handler = {"mint": cmd_token_mint, "approve": cmd_token_approve,
                       "balance": cmd_token_balance}.get(args.subcommand)
        elif args.command == "stake":
            handler = {"deposit": cmd_stake_deposit, "withdraw": cmd_stake_withdraw,
                       "request": cmd_stake_request, "distribute": cmd_stake_distribute,
                       "set-param": cmd_stake_set_param, "balance": cmd_stake_balance,
                       "info": cmd_stake_info, "pause": cmd_stake_pause,
                       "unpause": cmd_stake_pause}.get(args.subcommand)
        elif args.command == "gov":
            if args.subcommand in GOV_TRANSITIONS:
                handler = cmd_gov_transition
            else:
                handler = {"add": cmd_gov_add, "pause-proposal": cmd_gov_proposal_status,
                           "resume-proposal": cmd_gov_proposal_status, "cancel": cmd_gov_proposal_status,
                           "vote": cmd_gov_vote, "pause": cmd_gov_pause, "unpause": cmd_gov_pause,
                           "status": cmd_gov_status, "result": cmd_gov_result}.get(args.subcommand)
        elif args.command == "metrics":
            handler = cmd_metrics
        elif args.command == "events":
            if args.subcommand == "list":
                handler = cmd_events_list

        if handler is None:
            parser.print_help()
            return
        handler(system, args)
        system.commit()
    finally:
        system.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="centralex-cli", description="Centralex Staking & Governance CLI")
    parser.add_argument("--db", help=f"SQLite database path (default: $CENX_DB or {DEFAULT_DB})")
    parser.add_argument("--network", help="Network config: devnet, testnet, mainnet (default: $CENX_NETWORK)")
    parser.add_argument("--time", type=int, help="Override the clock (unix seconds)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # init
    p_init = subparsers.add_parser("init", help="Create token, staking ledger and governance")
    p_init.add_argument("--owner", required=True, help="Owner account")

    # token
    p_token = subparsers.add_parser("token", help="Local token operations")
    sp_token = p_token.add_subparsers(dest="subcommand")

    pt_mint = sp_token.add_parser("mint", help="Mint tokens to an account")
    pt_mint.add_argument("account", help="Recipient account")
    pt_mint.add_argument("amount", type=int, help="Amount in minimal units")

    pt_approve = sp_token.add_parser("approve", help="Allow the ledger to pull tokens")
    pt_approve.add_argument("owner", help="Token owner")
    pt_approve.add_argument("amount", type=int, help="Allowance in minimal units")
    pt_approve.add_argument("--spender", help="Spender (default: ledger address)")

    pt_bal = sp_token.add_parser("balance", help="Token balance of an account")
    pt_bal.add_argument("account", help="Account")

    # stake
    p_stake = subparsers.add_parser("stake", help="Staking ledger")
    sp_stake = p_stake.add_subparsers(dest="subcommand")

    ps_dep = sp_stake.add_parser("deposit", help="Open a deposit or add to one")
    ps_dep.add_argument("amount", type=int, help="Amount in minimal units")
    ps_dep.add_argument("--id", type=int, help="Existing deposit id to add to")
    ps_dep.add_argument("--from", dest="sender", required=True, help="Sender account")

    ps_wd = sp_stake.add_parser("withdraw", help="Withdraw a deposit (forced unless --requested)")
    ps_wd.add_argument("id", type=int, help="Deposit id")
    ps_wd.add_argument("--requested", action="store_true", help="Complete a requested withdrawal (no fee)")
    ps_wd.add_argument("--from", dest="sender", required=True, help="Sender account")

    ps_req = sp_stake.add_parser("request", help="Request a fee-free withdrawal")
    ps_req.add_argument("id", type=int, help="Deposit id")
    ps_req.add_argument("--from", dest="sender", required=True, help="Sender account")

    ps_dist = sp_stake.add_parser("distribute", help="Distribute rewards (owner)")
    ps_dist.add_argument("amount", type=int, help="Reward amount in minimal units")
    ps_dist.add_argument("--from", dest="sender", required=True, help="Owner account")

    ps_param = sp_stake.add_parser("set-param", help="Schedule a parameter change (owner)")
    ps_param.add_argument("name", choices=sorted(PARAM_EVENTS), help="Parameter name")
    ps_param.add_argument("value", type=int, help="New value (fractions scaled by 1e18, durations in seconds)")
    ps_param.add_argument("--from", dest="sender", required=True, help="Owner account")

    ps_bal = sp_stake.add_parser("balance", help="Deposits of an account")
    ps_bal.add_argument("account", help="Account")

    sp_stake.add_parser("info", help="Ledger totals and parameters")

    for name in ("pause", "unpause"):
        ps_p = sp_stake.add_parser(name, help=f"{name.capitalize()} the staking ledger (owner)")
        ps_p.add_argument("--from", dest="sender", required=True, help="Owner account")

    # gov
    p_gov = subparsers.add_parser("gov", help="Governance sessions")
    sp_gov = p_gov.add_subparsers(dest="subcommand")

    for name in list(GOV_TRANSITIONS) + ["pause", "unpause"]:
        pg = sp_gov.add_parser(name, help=f"Governance action '{name}' (owner)")
        pg.add_argument("--from", dest="sender", required=True, help="Owner account")

    pg_add = sp_gov.add_parser("add", help="Add a proposal to the draft (owner)")
    pg_add.add_argument("id", type=int, help="Proposal id (> 0, never reused)")
    pg_add.add_argument("title", help="Proposal title")
    pg_add.add_argument("--from", dest="sender", required=True, help="Owner account")

    for name in ("pause-proposal", "resume-proposal", "cancel"):
        pg = sp_gov.add_parser(name, help=f"{name.replace('-', ' ').capitalize()} (owner)")
        pg.add_argument("id", type=int, help="Proposal id")
        pg.add_argument("--from", dest="sender", required=True, help="Owner account")

    pg_vote = sp_gov.add_parser("vote", help="Vote for a proposal")
    pg_vote.add_argument("id", type=int, help="Proposal id")
    pg_vote.add_argument("--from", dest="sender", required=True, help="Voter account")

    sp_gov.add_parser("status", help="Phase and proposals of the current session")

    pg_res = sp_gov.add_parser("result", help="Vote count of a proposal")
    pg_res.add_argument("id", type=int, help="Proposal id")

    # metrics
    subparsers.add_parser("metrics", help="Print Prometheus metrics for the current state")

    # events
    p_events = subparsers.add_parser("events", help="Event log")
    sp_events = p_events.add_subparsers(dest="subcommand")

    pe_list = sp_events.add_parser("list", help="List recorded events")
    pe_list.add_argument("--name", help="Event name filter (e.g. Deposited)")
    pe_list.add_argument("--source", choices=["staking", "governance"], help="Engine filter")
    pe_list.add_argument("--limit", type=int, help="Show only the last N events")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    try:
        run(args, parser)
    except ProtocolError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
