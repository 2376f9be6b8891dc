#!/usr/bin/env python3
"""BMS Assistant CLI."""

import argparse
import logging
import sys

from config.settings import Settings
from llm.errors import AssistantError
from orchestrator import create_assistant
from schemas.request import AiMode, AskOpts, BusinessContext


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="BMS Assistant - business coaching replies from the AI gateway"
    )
    parser.add_argument(
        "--question",
        "-q",
        type=str,
        help="Message to send"
    )
    parser.add_argument(
        "--mode",
        "-m",
        type=str,
        choices=["AUTO", "SW", "EN"],
        default="AUTO",
        help="Reply language mode (default: AUTO)"
    )
    parser.add_argument("--org-id", type=str, help="Organization id (scopes conversation memory)")
    parser.add_argument("--org-name", type=str, help="Organization name")
    parser.add_argument("--store-id", type=str, help="Active store id")
    parser.add_argument("--store-name", type=str, help="Active store name")
    parser.add_argument("--role", type=str, help="Active role of the user")
    parser.add_argument("--gateway-url", type=str, help="Override the gateway base URL")
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Use the streaming endpoint (falls back to typed reply)"
    )
    parser.add_argument(
        "--typing",
        action="store_true",
        help="Reveal the reply with simulated typing"
    )
    parser.add_argument(
        "--autosave-tasks",
        action="store_true",
        help="Save returned action items as tasks"
    )
    parser.add_argument(
        "--reset-memory",
        action="store_true",
        help="Forget conversation memory for the org before asking"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(gateway_url=args.gateway_url, verbose=args.verbose)
    assistant = create_assistant(settings)

    if args.reset_memory:
        assistant.clear_memory(args.org_id)
        if not args.question:
            print("Conversation memory cleared.")
            return

    if not args.question:
        parser.error("--question is required unless --reset-memory is given")

    opts = AskOpts(
        mode=AiMode(args.mode),
        context=BusinessContext(
            org_id=args.org_id,
            active_org_name=args.org_name,
            active_store_id=args.store_id,
            active_store_name=args.store_name,
            active_role=args.role,
        ),
        task_autosave=args.autosave_tasks,
    )

    def show_partial(partial: str):
        sys.stdout.write("\r\033[K" + partial.replace("\n", " ")[-120:])
        sys.stdout.flush()

    try:
        if args.stream:
            meta = assistant.ask_streaming(args.question, opts, show_partial)
            print()
        elif args.typing:
            meta = assistant.ask_typing(args.question, opts, show_partial)
            print()
        else:
            meta = assistant.ask_with_meta(args.question, opts)

        print("\n" + "=" * 60)
        print("REPLY")
        print("=" * 60 + "\n")
        print(meta.text)

        if meta.actions:
            print("\nACTIONS:")
            for i, action in enumerate(meta.actions, 1):
                priority = f" [{action.priority.value}]" if action.priority else ""
                eta = f" ({action.eta})" if action.eta else ""
                print(f"  {i}. {action.title}{priority}{eta}")
                for step in action.steps or []:
                    print(f"     - {step}")

        if meta.next_move:
            print(f"\nNEXT MOVE: {meta.next_move}")
        print()
    except AssistantError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        assistant.close()


if __name__ == "__main__":
    main()
