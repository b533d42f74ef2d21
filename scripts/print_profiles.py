from __future__ import annotations

import argparse
import pprint

from trend_confluence.config import load_config
from trend_confluence.profiles import BUILTIN_PROFILES, profile_signature


def main():
    p = argparse.ArgumentParser(description="Print strategy profiles and their signatures for a config")
    p.add_argument("--config", default=None, help="Path to YAML config (built-ins if omitted)")
    args = p.parse_args()

    cfg = load_config(args.config)

    print("CONFIGURED PROFILES:")
    for prof in cfg.profiles:
        print(f"\n{prof.name} sig={profile_signature(prof)}")
        pprint.pprint(prof.to_dict())
    print("\nBUILT-IN NAMES:", sorted(BUILTIN_PROFILES))


if __name__ == "__main__":
    main()
