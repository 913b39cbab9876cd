"""Command line interface for the AI service"""

import argparse
import asyncio
import sys

from .config import load_config, setup_logging
from .credentials import configure_credentials_interactive, get_credential_manager
from .errors import AIServiceError
from .orchestrator import AIService, GenerationRequest
from .providers import DEFAULT_TIMEOUT_SECONDS
from .registry import AUTO, PROVIDER_PREFERENCE_ORDER, PROVIDERS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bestseller AI generation CLI")
    parser.add_argument("prompt", nargs="?", help="The prompt to send")
    parser.add_argument(
        "--provider",
        "-p",
        default=AUTO,
        choices=[AUTO] + [p.value for p in PROVIDER_PREFERENCE_ORDER],
        help="Provider to use (default: auto)",
    )
    parser.add_argument("--model", "-m", default=AUTO, help="Model id (default: auto)")
    parser.add_argument("--temperature", "-t", type=float, default=0.7)
    parser.add_argument("--max-tokens", type=int, default=2000)
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"Overall time limit in seconds (per request limit: {DEFAULT_TIMEOUT_SECONDS:g}s)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument(
        "--test-key",
        metavar="PROVIDER",
        help="Check the stored key for a provider with a minimal request",
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="List providers and whether a usable key is configured",
    )
    parser.add_argument("--configure", action="store_true", help="Configure API keys")
    return parser


async def main(argv: list[str] | None = None) -> int:
    """CLI interface for the AI service"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.configure:
        configure_credentials_interactive()
        return 0

    config = load_config()
    setup_logging(config, verbose=args.verbose)
    credentials = get_credential_manager()

    async with AIService(config=config, credentials=credentials) as service:
        if args.list_providers:
            usable = set(service.available_providers())
            print("\nProviders (fallback order):")
            print("=" * 60)
            for provider in PROVIDER_PREFERENCE_ORDER:
                descriptor = PROVIDERS[provider]
                status = "ready" if provider in usable else "no usable key"
                print(f"\n{provider.value}:")
                print(f"  Name: {descriptor.display_name}")
                print(f"  Default model: {descriptor.default_model}")
                print(f"  Model discovery: {'yes' if descriptor.supports_model_listing else 'no'}")
                print(f"  Status: {status}")
            return 0

        if args.test_key:
            api_key = credentials.get_api_key(args.test_key) or ""
            check = await service.test_api_key(args.test_key, api_key)
            if check.valid:
                print(f"{args.test_key}: API key is valid")
                return 0
            print(f"{args.test_key}: {check.error}")
            return 1

        if not args.prompt:
            parser.print_help()
            return 0

        request = GenerationRequest(
            prompt=args.prompt,
            provider=args.provider,
            model=args.model,
            max_tokens=args.max_tokens,
            temperature=args.temperature,
        )
        try:
            result = await service.generate(request, timeout=args.timeout)
        except AIServiceError as e:
            print(f"\nError: {e.message}")
            return 1

    source = "cache" if result.cached else f"{result.latency_ms:.0f}ms"
    print(f"\n[{result.provider.value}/{result.model}] ({source})")
    print("-" * 60)
    print(result.content)
    print("-" * 60)
    tokens = result.tokens_used if result.tokens_used is not None else "unknown"
    print(f"Tokens: {tokens}")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
