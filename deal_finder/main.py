from __future__ import annotations

import argparse

from pydantic import ValidationError
from supabase import create_client

from . import __version__
from .cache import SupabaseDealCache
from .config import REQUIRED_KEYS, Config
from .errors import InvalidRequestError
from .gtin import canonical_gtin, is_valid_gtin
from .identity import build_identity
from .log import setup_logging
from .normalize import format_size, normalize_size, parse_quantity
from .pipeline import DealFinder
from .schemas import DealRequest


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="deal-finder")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--env", default=None, help="Load config from Infisical for this env instead of .env")
    p.add_argument("--log-level", default=None, help="Override DEAL_LOG_LEVEL")

    sub = p.add_subparsers(dest="cmd", required=False)

    p_config = sub.add_parser("config", help="Config commands")
    sub_config = p_config.add_subparsers(dest="config_cmd", required=True)
    sub_config.add_parser("keys", help="List required config keys")
    sub_config.add_parser("check", help="Validate config is filled")

    p_deals = sub.add_parser("deals", help="Find and rank deals for a product title")
    p_deals.add_argument("title", help="Product title, e.g. 'CeraVe Hydrating Cleanser 16 fl oz'")
    p_deals.add_argument("--product-id", default=None, help="Cache deals under this product id")

    p_verify = sub.add_parser("verify", help="Score a product page against a wanted identity")
    p_verify.add_argument("url", help="Product page URL")
    p_verify.add_argument("--brand", required=True)
    p_verify.add_argument("--name", required=True)
    p_verify.add_argument("--size", default=None, help="e.g. '3 fl oz' or '90 ml'")
    p_verify.add_argument("--form", default=None, help="e.g. serum, cream, soap")
    p_verify.add_argument("--scent", default=None, help="Scent or shade")
    p_verify.add_argument("--gtin", default=None)

    p_gtin = sub.add_parser("gtin", help="Validate a GTIN/UPC/EAN check digit")
    p_gtin.add_argument("code")

    p_size = sub.add_parser("size", help="Parse a size string")
    p_size.add_argument("text")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    return p


def _load_config(args) -> Config:
    if args.env:
        return Config.load_from_infisical(env=args.env)
    return Config.load_from_env()


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    if args.cmd is None:
        p.print_help()
        return 0

    if args.cmd == "config":
        if args.config_cmd == "keys":
            for k in REQUIRED_KEYS:
                print(k)
            return 0

        if args.config_cmd == "check":
            # Intentionally do not print secret values
            cfg = _load_config(args)
            print(f"OK: config present (cache={'on' if cfg.cache_enabled else 'off'}, "
                  f"browser={'on' if cfg.browser_enabled else 'off'})")
            return 0

    if args.cmd == "gtin":
        ok = is_valid_gtin(args.code)
        print(f"{'VALID' if ok else 'INVALID'}: {args.code}")
        if ok:
            print(f"  canonical: {canonical_gtin(args.code)}")
        return 0 if ok else 1

    if args.cmd == "size":
        q = parse_quantity(args.text)
        if q is None:
            print("No size found.")
            return 1
        size = normalize_size(args.text)
        print(f"as written: {format_size(q)}")
        if size is None:
            print("  no volume/weight channel (count or pack)")
        else:
            unit = "ml" if size.channel == "volume" else "g"
            print(f"  {size.channel}: {size.value:g} {unit}")
        return 0

    cfg = _load_config(args)
    setup_logging(args.log_level or cfg.log_level)

    if args.cmd == "deals":
        return _run_deals(cfg, args)

    if args.cmd == "verify":
        return _run_verify(cfg, args)

    if args.cmd == "serve":
        import uvicorn

        uvicorn.run("deal_finder.api:app", host=args.host, port=args.port)
        return 0

    raise RuntimeError("unreachable")


def _run_deals(cfg: Config, args) -> int:
    try:
        req = DealRequest(product_title=args.title, product_id=args.product_id)
    except ValidationError as exc:
        raise InvalidRequestError(str(exc)) from exc

    cache = None
    if args.product_id and cfg.cache_enabled:
        cache = SupabaseDealCache(create_client(cfg.supabase_url, cfg.supabase_key))

    resp = DealFinder(cfg, cache=cache).find_deals(req)
    if not resp.deals:
        print(resp.message or "No deals found.")
        return 1

    print(f"{len(resp.deals)} deals{' (cached)' if resp.cached else ''}, best value first:")
    for i, d in enumerate(resp.deals, 1):
        price = f"${d.price:.2f}" if d.price is not None else "N/A"
        ppu = f"  (${d.price_per_unit:.2f}/unit)" if d.price_per_unit is not None else ""
        print(f"{i}. {d.retailer}: {d.display_name}")
        print(f"   Price: {price}{ppu}  {d.availability}")
        print(f"   URL: {d.deal_url}")
        print()
    return 0


def _run_verify(cfg: Config, args) -> int:
    wanted = build_identity(
        brand=args.brand,
        name=args.name,
        size=args.size,
        form=args.form,
        scent_shade=args.scent,
        gtin=args.gtin,
        scent_aliases=cfg.scent_aliases,
    )
    v = DealFinder(cfg).verify_listing(args.url, wanted)
    r = v.result
    b = r.breakdown
    print(f"{'PASS' if r.passed else 'FAIL'}: score={r.score:.2f} reason={r.reason.value}")
    print(f"  brand={b.brand_match} name={b.name_tokens_matched}/{b.name_tokens_total} "
          f"size={b.size_match} form={b.form_match} scent={b.scent_match} "
          f"gtin_valid={b.gtin_valid} gtin_match={b.gtin_match} domain_boost={b.domain_boost}")
    for w in v.reading.warnings:
        print(f"  WARN: {w}")
    return 0 if r.passed else 1


if __name__ == "__main__":
    raise SystemExit(main())
