#!/usr/bin/env python3
"""
Main CLI application for the local AI engine.
"""

import argparse
import logging
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Import after loading env vars to ensure proper configuration
from .application.engine import LocalAIEngine
from .domain.errors import LocalAIError
from .infrastructure.config.settings import get_settings
from .presentation.cli import ChatCLI
from .utils import setup_logging, format_progress, load_papers


def build_parser(default_model: str, default_level: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="local-ai",
        description="Chat with papers using a locally supervised Ollama runtime",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --init                                   # Install/start Ollama and pull the model
  %(prog)s --paper paper.json                       # Interactive chat about one paper
  %(prog)s --paper a.txt --paper b.txt --message "Compare them"
        """
    )

    parser.add_argument('--init',
                       action='store_true',
                       help='Install, start and prepare the runtime before chatting')
    parser.add_argument('--paper',
                       action='append',
                       default=[],
                       metavar='FILE',
                       help='Paper to load (JSON record or plain text); repeatable')
    parser.add_argument('--message',
                       help='Single message mode (non-interactive)')
    parser.add_argument('--model',
                       default=default_model,
                       help=f'Model name (default: {default_model})')
    parser.add_argument('--keep-runtime',
                       action='store_true',
                       help='Leave a runtime we started running on exit')
    parser.add_argument('--log-level',
                       default=default_level,
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Set logging level')
    parser.add_argument('--version',
                       action='version',
                       version='%(prog)s 1.0.0')
    return parser


def main(argv=None) -> int:
    """Main entry point for the local AI CLI."""
    settings = get_settings()
    parser = build_parser(settings.chat.model, settings.log_level)
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        papers = load_papers(args.paper)
    except (OSError, ValueError) as e:
        print(f"❌ Error: could not load paper: {e}")
        return 1

    engine = LocalAIEngine(settings)
    engine.chat.set_model(args.model)
    try:
        if args.init:
            if not engine.initialize(lambda msg, pct: print(format_progress(msg, pct))):
                print("❌ Error: runtime is not ready")
                return 1
        elif not engine.runtime.is_running():
            print("❌ Error: Ollama is not running. Start it yourself or pass --init")
            return 1

        cli = ChatCLI(engine.chat)
        if args.message:
            if not papers:
                print("❌ Error: --message needs at least one --paper")
                return 1
            engine.chat.start_chat(papers)
            print(engine.chat.send_message(args.message))
        else:
            if papers:
                engine.chat.start_chat(papers)
            cli.interactive_mode()
        return 0

    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        return 0
    except LocalAIError as e:
        logger.error(f"Application error: {e}")
        print(f"❌ Fatal error: {e}")
        return 1
    finally:
        if args.keep_runtime:
            engine.chat.clear_chat()
            engine.runtime.close()
        else:
            engine.shutdown()


if __name__ == "__main__":
    sys.exit(main())
