import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from chat_session_manager.app_config import load_json_config, parse_app_config, resolve_runtime_env
from chat_session_manager.bootstrap import bootstrap_runtime
from chat_session_manager.console import ChatConsole


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env(app.provider_name)

    runtime = await bootstrap_runtime(app, env)

    if not env.provider_api_key:
        logger.error(f"{env.provider_env_var} environment variable is required.")
        runtime.store.close()
        sys.exit(1)

    console = ChatConsole(runtime.chat_service, user_id=app.user_id, models=app.models)

    try:
        await console.initialize()

        print("chat-session-manager (type 'exit' to quit, '/help' for commands)")
        print(f"Provider: {app.provider_name} (model: {app.model}, window: {app.max_conversation_tokens:,} tokens)")
        print(f"Store: {app.store_db_path}")
        if runtime.log_descriptions:
            print(f"Logging: {', '.join(runtime.log_descriptions)}")
        print()

        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                await console.run(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.store.close()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
