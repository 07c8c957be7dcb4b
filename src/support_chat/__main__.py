"""CLI entry point for support-chat."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from support_chat.config import AppConfig, load_config
from support_chat.log import setup_logging


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="support-chat",
        description="AI-assisted support chat service",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def _add_config_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        p.add_argument("-e", "--env", default=".env", help="Path to .env file")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    _add_config_args(serve_parser)
    serve_parser.add_argument("--host", help="Override server.host")
    serve_parser.add_argument("--port", type=int, help="Override server.port")

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    sweep_parser = subparsers.add_parser("sweep", help="Expire idle conversations once and exit")
    _add_config_args(sweep_parser)

    export_parser = subparsers.add_parser("export", help="Export a conversation transcript")
    _add_config_args(export_parser)
    export_parser.add_argument("conversation_id")
    export_parser.add_argument("secret")
    export_parser.add_argument("-f", "--format", choices=["json", "text"], default="text")
    export_parser.add_argument("-o", "--output", help="Write to this file instead of stdout")

    args = parser.parse_args(argv)

    if args.command is None:
        args.command = "serve"
        args.config = "config.yaml"
        args.env = ".env"
        args.host = None
        args.port = None

    config = _load_or_exit(args.config, args.env)

    if args.command == "config-check":
        _check_config(args.config, config)
    elif args.command in ("sweep", "export"):
        setup_logging(config.log_level, config.json_logs)
        try:
            if args.command == "sweep":
                expired = asyncio.run(_sweep(config))
                print(f"Expired conversations: {expired}")
            else:
                asyncio.run(
                    _export(config, args.conversation_id, args.secret, args.format, args.output)
                )
        except ValueError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "serve":
        _serve(config, args.host, args.port)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    """Print a configuration summary."""
    print(f"Configuration valid: {config_path}")
    print(f"  Storage     : {config.storage.db_path}")
    print(f"  AI backend  : {config.ai.backend} ({config.ai.model})")
    backend_section = config.anthropic if config.ai.backend == "anthropic" else config.openai
    if backend_section is None:
        print(f"  WARNING     : no '{config.ai.backend}' section, the server will not start")
    print(f"  Rate limit  : {config.rate_limit.max_requests} req / {config.rate_limit.window_seconds}s")
    print(f"  Max message : {config.chat.max_message_length} chars")
    reaper = f"every {config.reaper.interval_minutes} min" if config.reaper.enabled else "disabled"
    print(f"  Reaper      : {reaper}")
    mail = "smtp " + config.notifications.smtp_host if config.notifications.enabled else "disabled"
    print(f"  E-mail      : {mail} (staff: {len(config.notifications.staff_addresses)})")
    print(f"  Roles       : {len(config.access.roles)} address(es) with a non-default role")


async def _sweep(config: AppConfig) -> int:
    from support_chat.app import SupportChatApp

    app = SupportChatApp(config)
    await app.start(run_scheduler=False)
    try:
        return await app.reaper.sweep()
    finally:
        await app.stop()


async def _export(
    config: AppConfig, conversation_id: str, secret: str, fmt: str, output: str | None
) -> None:
    from support_chat.app import SupportChatApp
    from support_chat.errors import ChatError

    app = SupportChatApp(config)
    await app.start(run_scheduler=False)
    try:
        exported = await app.protocol.export_transcript(conversation_id, secret, fmt)
    except ChatError as e:
        print(f"{e.kind}: {e.message}", file=sys.stderr)
        sys.exit(1)
    finally:
        await app.stop()

    if output:
        Path(output).write_bytes(exported.body)
        print(f"Wrote {output}")
    else:
        sys.stdout.write(exported.body.decode("utf-8"))


def _serve(config: AppConfig, host: str | None, port: int | None) -> None:
    import uvicorn

    from support_chat.api.server import create_app
    from support_chat.app import SupportChatApp

    setup_logging(config.log_level, config.json_logs)
    try:
        chat_app = SupportChatApp(config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    uvicorn.run(
        create_app(chat_app),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
