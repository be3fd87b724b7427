#!/usr/bin/env python
"""
Run the dailyloop API with uvicorn.

    python -m dailyloop.run_server --port 8000 [--init-db]
"""
import argparse

import uvicorn


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Run the dailyloop API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument("--init-db", action="store_true", help="create tables before starting")
    args = parser.parse_args(argv)

    if args.init_db:
        from dailyloop.core.database import create_all_tables
        create_all_tables()
        print("[INFO] Tables created")

    uvicorn.run("dailyloop.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
