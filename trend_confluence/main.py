from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from typing import Dict, List, Optional

from .analysis import analyze_all
from .config import Config, load_config
from .data import load_symbol_dir
from .errors import ConfigurationError
from .evaluator import EvaluationContext, evaluate_all, required_timeframes
from .formatters import format_per_profile, format_signal, format_summary, format_trades
from .models import Candle
from .profiles import StrategyProfile, profile_signature
from .runner import BacktestRunner, run_backtests

log = logging.getLogger("main")


def _setup_logging(level: str) -> None:
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _select_profiles(cfg: Config, names: Optional[List[str]]) -> List[StrategyProfile]:
    if not names:
        return list(cfg.profiles)
    return [cfg.profile(n) for n in names]


def _latest_ts(candles_by_tf: Dict[str, List[Candle]]) -> Optional[int]:
    stamps = [series[-1].timestamp_ms for series in candles_by_tf.values() if series]
    return max(stamps) if stamps else None


def _cmd_evaluate(cfg: Config, args) -> int:
    profiles = _select_profiles(cfg, args.profile)
    candles = load_symbol_dir(args.data_dir, args.symbol, required_timeframes(profiles))
    analyses = analyze_all(candles, cfg.analysis)
    ctx = EvaluationContext(symbol=args.symbol, as_of_ms=_latest_ts(candles), settings=cfg.analysis)
    best, per_profile = evaluate_all(analyses, profiles, ctx)

    if args.json:
        out = {
            "best": best.to_dict(),
            "profiles": {name: s.to_dict() for name, s in per_profile.items()},
            "analyses": {tf: (a.to_dict() if a is not None else None) for tf, a in analyses.items()},
        }
        print(json.dumps(out, indent=2))
    else:
        print(format_signal(best))
        print()
        print(format_per_profile(per_profile))
    return 0


def _cmd_backtest(cfg: Config, args) -> int:
    profiles = _select_profiles(cfg, args.profile)
    tfs = required_timeframes(profiles)
    if cfg.backtest.timeframe and cfg.backtest.timeframe not in tfs:
        tfs.append(cfg.backtest.timeframe)
    data = {sym: load_symbol_dir(args.data_dir, sym, tfs) for sym in args.symbol}

    runner = BacktestRunner(cfg)
    prev_handler = signal.signal(signal.SIGINT, lambda *_: runner.cancel())
    try:
        results, failures = run_backtests(cfg, data, profiles, runner=runner)
    finally:
        signal.signal(signal.SIGINT, prev_handler)

    for res in results:
        print(format_summary(res))
        for line in format_trades(res, limit=args.show_trades):
            print("  " + line)
        print()
    for sym, name, err in failures:
        print(f"FAILED {sym} {name}: {err}", file=sys.stderr)

    if args.out:
        payload = {
            "results": [r.to_dict() for r in results],
            "failures": [{"symbol": s, "profile": p, "error": e} for s, p, e in failures],
        }
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        log.info("results_written path=%s runs=%d", args.out, len(results))
    return 1 if failures else 0


def _cmd_profiles(cfg: Config, args) -> int:
    for p in cfg.profiles:
        if args.json:
            print(json.dumps({"signature": profile_signature(p), **p.to_dict()}, sort_keys=True))
        else:
            print(
                f"{p.name}: anchors={','.join(p.anchor_timeframes)} confirm={','.join(p.confirm_timeframes) or '-'} "
                f"entry={','.join(p.entry_timeframes)} stop={p.stop_loss_timeframe} "
                f"min_conf={p.min_confidence:g} rr={','.join(f'{r:g}' for r in p.risk_reward_targets)} "
                f"sig={profile_signature(p)[:12]}"
            )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="trend-confluence", description="Trend Confluence - multi-timeframe signals and backtests")
    p.add_argument("--config", default=None, help="Path to YAML config (defaults apply without it)")
    p.add_argument("--log-level", default=None, help="Override app.log_level")
    sub = p.add_subparsers(dest="command", required=True)

    ev = sub.add_parser("evaluate", help="Evaluate the latest candles of one symbol")
    ev.add_argument("--data-dir", required=True)
    ev.add_argument("--symbol", required=True)
    ev.add_argument("--profile", action="append", help="Profile name (repeatable, default: all)")
    ev.add_argument("--json", action="store_true", help="Print JSON instead of text")
    ev.set_defaults(func=_cmd_evaluate)

    bt = sub.add_parser("backtest", help="Backtest symbols x profiles")
    bt.add_argument("--data-dir", required=True)
    bt.add_argument("--symbol", action="append", required=True, help="Symbol (repeatable)")
    bt.add_argument("--profile", action="append", help="Profile name (repeatable, default: all)")
    bt.add_argument("--out", default=None, help="Write JSON results here")
    bt.add_argument("--show-trades", type=int, default=5)
    bt.set_defaults(func=_cmd_backtest)

    pr = sub.add_parser("profiles", help="List configured profiles")
    pr.add_argument("--json", action="store_true")
    pr.set_defaults(func=_cmd_profiles)
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (ConfigurationError, OSError) as e:
        _setup_logging(args.log_level or "INFO")
        log.error("config_error err=%s", e)
        return 2
    _setup_logging(args.log_level or cfg.app.log_level)

    try:
        return args.func(cfg, args)
    except ConfigurationError as e:
        log.error("config_error err=%s", e)
        return 2
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        log.exception("fatal err=%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
