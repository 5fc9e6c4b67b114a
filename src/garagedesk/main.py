from __future__ import annotations

import argparse
import logging

from .cli import run_cli
from .config import ConfigError, load_config
from .db import Db, DbError
from .services.workshop_service import build_service


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="garagedesk")
    parser.add_argument("--config", default="config.toml")
    parser.add_argument("--serve", action="store_true", help="run the HTTP API instead of the menu")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
        logging.basicConfig(
            level=getattr(logging, cfg.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        db = Db(cfg.db)
        service = build_service(cfg.business)
        if args.serve:
            from .web_app import create_app

            create_app(db, service).run(host="127.0.0.1", port=args.port)
        else:
            run_cli(db, service)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
