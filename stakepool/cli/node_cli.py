import argparse
import os
import logging

from protocol.config.params import NETWORKS, CURRENT_NETWORK
from ..core.service import StakingService
from ..core.asset_ledger import TokenLedger
from ..storage.db import StorageDB
from ..snapshot import SnapshotManager
from ..rpc import api

logger = logging.getLogger(__name__)

DB_NAME = "pool.db"


def _network(args):
    return NETWORKS[args.network] if args.network else CURRENT_NETWORK


def _operator(args, network):
    return getattr(args, "operator", None) or network.operator_address


def cmd_init(args):
    """Initialize node: data dir, genesis token supply, vault funding."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)
    network = _network(args)
    db_path = os.path.join(data_dir, DB_NAME)
    operator = _operator(args, network)
    if operator is None:
        logger.error(f"Network {network.network_id} has no default operator. Pass --operator ADDRESS.")
        return

    db = StorageDB(db_path)
    try:
        tokens = TokenLedger(db)
        if tokens.total_supply > 0:
            print(f"Token ledger already initialized in {db_path} (supply {tokens.total_supply})")
        else:
            tokens.mint(operator, network.genesis_supply)
            if network.vault_funding:
                tokens.send(operator, network.pool_address, network.vault_funding)
            print(f"Minted genesis supply {network.genesis_supply} to {operator}")
            print(f"Vault {network.pool_address} funded with {network.vault_funding}")
    finally:
        db.close()

    # Creates the pool record with the network's initial rate
    service = StakingService.from_db_path(db_path, network=network, operator=operator)
    service.state.db.close()

    print(f"\nNode initialized in {data_dir} ({network.network_id})")


def cmd_run(args):
    data_dir = args.datadir
    db_path = os.path.join(data_dir, DB_NAME)
    network = _network(args)

    if not os.path.exists(db_path):
        logger.error(f"No pool database at {db_path}. Run 'init' first.")
        return

    print(f"Starting StakePool node ({network.network_id})...")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    operator = _operator(args, network)
    if operator is None:
        logger.warning("No operator configured: reward rate updates will be refused")
    service = StakingService.from_db_path(db_path, network=network, operator=operator)
    snapshots = SnapshotManager(os.path.join(data_dir, "snapshots"))

    if args.restore_snapshot is not None:
        snapshot = snapshots.load_snapshot(args.restore_snapshot)
        snapshots.apply_snapshot(snapshot, service.state)

    try:
        api.start_rpc_server(service, snapshots, host=args.host, port=args.port)
    except KeyboardInterrupt:
        pass
    finally:
        service.state.persist()
        service.state.db.close()


def main():
    parser = argparse.ArgumentParser(description="StakePool Node CLI")
    parser.add_argument("--datadir", default="./.stakepool", help="Data directory")
    parser.add_argument("--network", choices=sorted(NETWORKS), default=None,
                        help=f"Network profile (default: {CURRENT_NETWORK.network_id})")
    parser.add_argument("--operator", default=None,
                        help="Operator address allowed to change the reward rate (default: network operator)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    subparsers.add_parser("init", help="Initialize token ledger and pool")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")
    run_parser.add_argument("--restore-snapshot", type=int, default=None,
                            help="Restore pool state from the snapshot at this sequence before serving")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)


if __name__ == "__main__":
    main()
