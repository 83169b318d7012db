"""Entry point: serve | cli | oneshot."""

import sys

from modsearch.core.config import config


def main():
    mode = "serve"
    if len(sys.argv) > 1:
        mode = sys.argv[1].lower()

    problems = config.validate()
    if problems:
        for problem in problems:
            print(f"Config error: {problem}")
        sys.exit(1)

    if mode == "serve":
        import uvicorn

        uvicorn.run(
            "modsearch.server.app:app",
            host=config.server_host,
            port=config.server_port,
            log_level=config.log_level.lower(),
        )

    elif mode == "cli":
        from modsearch.interfaces.cli import main as run_cli_main

        run_cli_main()

    elif mode == "oneshot":
        from modsearch.interfaces.oneshot import main as run_oneshot_main

        keyword_parts = sys.argv[2:]
        if keyword_parts:
            keyword = " ".join(keyword_parts).strip()
        else:
            keyword = sys.stdin.read().strip()
        sys.exit(run_oneshot_main(keyword=keyword))

    else:
        print(f"Unknown mode: {mode}")
        print("Usage: python -m modsearch.main [serve|cli|oneshot <keyword>]")
        sys.exit(1)


if __name__ == "__main__":
    main()
