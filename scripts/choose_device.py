import asyncio, argparse, sys
from bt_chooser.host import run

def main():
    ap = argparse.ArgumentParser(description="Scan for a Bluetooth device and print the chosen address")
    ap.add_argument("--config", help="YAML config; defaults apply when omitted")
    ap.add_argument("--adapter", help="e.g. hci0")
    ap.add_argument("--mac", help="select the device with this address")
    ap.add_argument("--name", help="select the first device whose name contains this text")
    ap.add_argument("--timeout", type=float, dest="settle_timeout_s", help="give up after N seconds")
    args = ap.parse_args()
    outcome = asyncio.run(run(
        args.config,
        adapter=args.adapter,
        mac=args.mac,
        name=args.name,
        settle_timeout_s=args.settle_timeout_s,
    ))
    if not outcome.is_selected:
        print("[cancelled]", file=sys.stderr)
        sys.exit(1)
    print(outcome.device_id)

if __name__ == "__main__":
    main()
