#!/usr/bin/env python3

import sys
import traceback
from datetime import datetime
from pathlib import Path

from web3 import Web3

from voting_deployer.config import LOG_DIR, load_settings
from voting_deployer.ledger import connect
from voting_deployer.recorder import DeploymentObserver, deploy

NEXT_STEPS = (
    "Add candidates using addCandidate() function",
    "Register voters using registerVoter() function",
    "Start voting using startVoting() function",
    "Monitor voting and get results using getWinner() function",
)

# ==============================================================================
# Logging Setup
# ==============================================================================


class Logger:
    """Stream that writes to both console and file"""

    def __init__(self, terminal, log_file):
        self.terminal = terminal
        self.log_file = log_file

    def write(self, message):
        # Write to console (handle encoding errors)
        try:
            self.terminal.write(message)
        except UnicodeEncodeError:
            clean_message = message.encode('ascii', 'ignore').decode('ascii')
            self.terminal.write(clean_message)

        # Write to log file (UTF-8)
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(message)

    def flush(self):
        self.terminal.flush()


def start_log(log_dir=LOG_DIR):
    """Create the log file and mirror stdout/stderr into it"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"deployment_log_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    with open(log_file, 'w', encoding='utf-8') as f:
        f.write("VotingSystem Deployment Log\n")
        f.write(f"Started: {datetime.now().isoformat()}\n")
        f.write("=" * 70 + "\n\n")

    sys.stdout = Logger(sys.stdout, log_file)
    sys.stderr = Logger(sys.stderr, log_file)

    return log_file


# ==============================================================================
# Console narration
# ==============================================================================


class ConsoleReporter(DeploymentObserver):
    """Prints deployment progress as it happens"""

    def on_step(self, event):
        handler = getattr(self, f"_on_{event.step}", None)
        if handler is not None:
            handler(event)

    def _on_start(self, event):
        print(f"[*] {event.message}\n")

    def _on_artifact(self, event):
        d = event.details
        print("[*] Deployment Details:")
        print(f"   Contract: {d['artifact']}")
        print(f"   Election Name: {d['label']}")
        print(f"   Network: {d['network']}")

    def _on_deployer(self, event):
        d = event.details
        print(f"   Deployer: {d['address']}")
        print(f"   Balance: {Web3.from_wei(d['balance'], 'ether')} ETH\n")

    def _on_submitting(self, event):
        print(f"[*] {event.message}")

    def _on_deployed(self, event):
        d = event.details
        print(f"[OK] {event.message}")
        print(f"   Contract Address: {d['address']}")
        print(f"   Transaction Hash: {d['transaction_hash']}")
        print(f"   Gas Used: {d['gas']}")

    def _on_verified(self, event):
        values = event.details["values"]
        print("\n[*] Contract Verification:")
        for check in event.details["checks"]:
            value = values[check.function]
            if check.kind == "bool" and check.function == "votingOpen":
                value = "Open" if value else "Closed"
            print(f"   {check.title}: {value}")

    def _on_saved(self, event):
        print(f"\n[OK] Deployment info saved to: {event.details['path']}")


def print_summary(record, context):
    """Print deployment summary"""
    print("\n" + "=" * 70)
    print("[SUCCESS] Deployment completed successfully!")
    print("=" * 70)

    print(f"\n   Network: {record.network}")
    print(f"   Contract Address: {record.contract_address}")
    print(f"   Record: {context.store.path_for(record.network)}")

    if context.explorer_url:
        print(f"\n[*] Explorer: {context.explorer_url}{record.transaction_hash}")

    print("\n[*] Next Steps:")
    for i, step in enumerate(NEXT_STEPS, 1):
        print(f"   {i}. {step}")

    print("\n" + "=" * 70)


def report_failure(error):
    print(f"\n[ERROR] Deployment failed: {error}", file=sys.stderr)
    cause = getattr(error, "cause", None)
    if cause is not None:
        print(f"   Caused by: {type(cause).__name__}: {cause}", file=sys.stderr)
    traceback.print_exc()


def run():
    """Deploy VotingSystem to the selected network; returns the exit code"""
    try:
        settings = load_settings()
        context = connect(settings)

        print("=" * 70)
        print("VotingSystem Deployment")
        print("=" * 70)
        print(f"Network: {settings.network}")
        print(f"RPC URL: {settings.rpc_url}")
        print("=" * 70 + "\n")

        record = deploy(
            settings.contract_name,
            [settings.election_name],
            context,
            observer=ConsoleReporter(),
        )
    except Exception as e:
        report_failure(e)
        return 1

    print_summary(record, context)
    return 0


def main():
    """Main entry point"""
    stdout, stderr = sys.stdout, sys.stderr
    try:
        try:
            log_file = start_log()
        except OSError as e:
            report_failure(e)
            return 1
        print(f"[INFO] Log file: {log_file}\n")
        return run()
    finally:
        sys.stdout, sys.stderr = stdout, stderr


if __name__ == "__main__":
    sys.exit(main())
