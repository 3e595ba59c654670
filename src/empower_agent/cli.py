from __future__ import annotations

import argparse
import json
import logging
import time
from collections import Counter

from .agent import Agent
from .config import AgentConfig, ConfigError
from .constants import (
    DEFAULT_CONTROLLER_ADDR,
    DEFAULT_CONTROLLER_PORT,
    DEFAULT_DELAY_MS,
    DEFAULT_DL_EARFCN,
    DEFAULT_ENB_ID,
    DEFAULT_N_PRB,
    DEFAULT_PCI,
    DEFAULT_UL_EARFCN,
)
from .controller import Controller


def _wait(duration: float | None) -> None:
    try:
        if duration is None:
            while True:
                time.sleep(3600)
        time.sleep(duration)
    except KeyboardInterrupt:
        pass


def cmd_run(args: argparse.Namespace) -> int:
    try:
        config = AgentConfig(
            controller_addr=args.controller_addr,
            controller_port=args.controller_port,
            delay_ms=args.delay_ms,
            pci=args.pci,
            dl_earfcn=args.dl_earfcn,
            ul_earfcn=args.ul_earfcn,
            n_prb=args.n_prb,
            enb_id=args.enb_id,
        )
    except ConfigError as e:
        logging.error("%s", e)
        return 2

    agent = Agent()
    if agent.init(config) or agent.start():
        return 1
    _wait(args.duration)
    agent.stop()

    payload = {"role": "agent", **agent.stats.as_dict()}
    if agent.error is not None:
        payload["error"] = repr(agent.error)
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if agent.error is None else 1


def cmd_controller(args: argparse.Namespace) -> int:
    controller = Controller(
        args.listen_host,
        args.listen_port,
        query_capabilities=args.query_capabilities,
    )
    with controller:
        _wait(args.duration)

    counts = Counter(
        f"{m.header.message_class.name}/{getattr(m.header.entity_class, 'name', m.header.entity_class)}"  # type: ignore[union-attr]
        for m in controller.received
    )
    payload = {"role": "controller", "received": dict(counts)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="empower-agent", description="EmPOWER eNB agent.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--duration", type=float, default=None, help="seconds to run (default: until Ctrl-C)")
        x.add_argument("--json", action="store_true")

    run = sub.add_parser("run", help="run the agent against a controller")
    add_common(run)
    run.add_argument("--controller-addr", default=DEFAULT_CONTROLLER_ADDR)
    run.add_argument("--controller-port", type=int, default=DEFAULT_CONTROLLER_PORT)
    run.add_argument("--delay-ms", type=int, default=DEFAULT_DELAY_MS, help="HELLO period and read timeout")
    run.add_argument("--pci", type=int, default=DEFAULT_PCI)
    run.add_argument("--dl-earfcn", type=int, default=DEFAULT_DL_EARFCN)
    run.add_argument("--ul-earfcn", type=int, default=DEFAULT_UL_EARFCN)
    run.add_argument("--n-prb", type=int, default=DEFAULT_N_PRB)
    run.add_argument("--enb-id", type=lambda s: int(s, 0), default=DEFAULT_ENB_ID)
    run.set_defaults(func=cmd_run)

    ctrl = sub.add_parser("controller", help="run a minimal controller for an agent to talk to")
    add_common(ctrl)
    ctrl.add_argument("--listen-host", default="127.0.0.1")
    ctrl.add_argument("--listen-port", type=int, default=DEFAULT_CONTROLLER_PORT)
    ctrl.add_argument("--query-capabilities", action="store_true")
    ctrl.set_defaults(func=cmd_controller)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
