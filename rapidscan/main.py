"""
rapidscan command line.

    rapidscan scan --device-id 1 --seconds 10 --url http://collector/data
    rapidscan check --device-id 1
    rapidscan devices

Settings come from a ``.env`` file (or ``--env-file``), then the process
environment, then the flags given here.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from core.runtime import ScanAbortedError, ScanRuntime, create_scan_device
from daq.errors import DeviceUnavailableError, check_error
from daq.registry import list_devices
from recording.csv_dump import dump_dataset_csv
from shared.settings import ScanSettings, load_settings
from shared.units import as_input_range

from . import __version__

logger = logging.getLogger("rapidscan")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s",
    )


def _load(args: argparse.Namespace) -> ScanSettings:
    return load_settings(
        args.env_file,
        post_url=getattr(args, "url", None),
        device_kind=args.device,
        log_level=args.log_level,
    )


def _cmd_scan(args: argparse.Namespace, settings: ScanSettings) -> int:
    device = create_scan_device(settings)
    runtime = ScanRuntime(device, args.device_id, settings)
    status = 0
    try:
        runtime.run(args.seconds)
    except ScanAbortedError as exc:
        logger.error("%s", exc)
        status = 1
    finally:
        if args.dump_csv and runtime.dataset is not None and runtime.publisher is not None:
            if runtime.dataset.lock.poisoned:
                logger.error("Dataset is poisoned; not writing %s", args.dump_csv)
            else:
                dump_dataset_csv(args.dump_csv, runtime.dataset, runtime.publisher.ranges)
    logger.info("Scan statistics: %s", runtime.stats())
    return status


def _cmd_check(args: argparse.Namespace, settings: ScanSettings) -> int:
    device = create_scan_device(settings)
    device_id = args.device_id
    try:
        if check_error(device.open(device_id), "open"):
            return 1
    except DeviceUnavailableError as exc:
        logger.error("%s", exc)
        return 1
    try:
        device.status(device_id, verbose=True)
        code, range1, range2 = device.input_check(device_id)
        if not check_error(code, "input_check"):
            logger.info(
                "Input ranges: ch1=%s ch2=%s",
                as_input_range(range1).name,
                as_input_range(range2).name,
            )
    finally:
        check_error(device.close(device_id), "close")
    return 0


def _cmd_devices(args: argparse.Namespace, settings: ScanSettings) -> int:
    for descriptor in list_devices():
        print(f"{descriptor.key:<12} {descriptor.name:<14} {descriptor.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rapidscan", description="Rapid position scan")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--env-file", default=None, help="dotenv file with scan settings")
    common.add_argument("--device", default=None, help="device backend key (see 'devices')")
    common.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_scan = subparsers.add_parser("scan", parents=[common], help="run one timed scan")
    p_scan.add_argument("--device-id", type=int, default=1)
    p_scan.add_argument("--seconds", type=float, required=True, help="scan duration")
    p_scan.add_argument("--url", default=None, help="collector URL (overrides DATA_POST_URL)")
    p_scan.add_argument("--dump-csv", default=None, help="write the final dataset to this CSV file")
    p_scan.set_defaults(func=_cmd_scan)

    p_check = subparsers.add_parser("check", parents=[common], help="open the device and report its status")
    p_check.add_argument("--device-id", type=int, default=1)
    p_check.set_defaults(func=_cmd_check)

    p_devices = subparsers.add_parser("devices", parents=[common], help="list device backends")
    p_devices.set_defaults(func=_cmd_devices)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _load(args)
    except (ValueError, FileNotFoundError) as exc:
        parser.error(str(exc))
    _configure_logging(settings.log_level)
    known = {descriptor.key for descriptor in list_devices()}
    if settings.device_kind not in known:
        parser.error(f"unknown device {settings.device_kind!r} (known: {', '.join(sorted(known))})")
    if args.command == "scan" and args.seconds < 0:
        parser.error("--seconds must be non-negative")
    if args.command == "scan" and not settings.post_url:
        parser.error("no collector URL: pass --url or set DATA_POST_URL")
    return args.func(args, settings)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
