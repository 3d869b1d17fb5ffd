import sys
import logging
import argparse
from wishlist import create_app
from wishlist.config import Config

log = logging.getLogger('werkzeug')
log.disabled = True
cli = sys.modules['flask.cli']
cli.show_server_banner = lambda *x: None


def build_config(args):
    overrides = {}
    if args.no_scheduler:
        overrides["SCHEDULER_ENABLED"] = False
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level.upper()
    if args.upload_root:
        overrides["UPLOAD_ROOT"] = args.upload_root
    if not overrides:
        return Config
    return type("RunConfig", (Config,), overrides)


def main() -> None:
    p = argparse.ArgumentParser(prog="wishlist", description="Wishlist API server")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8073)
    p.add_argument("--no-scheduler", action="store_true",
                   help="do not start the background price refresh")
    p.add_argument("--log-level", help="overrides LOG_LEVEL")
    p.add_argument("--upload-root", help="overrides UPLOAD_ROOT")
    args = p.parse_args()

    app = create_app(build_config(args))
    scheduler_state = "on" if app.config["SCHEDULER_ENABLED"] else "off"
    print(
        f"Wishlist API on http://{args.host}:{args.port}/api/v1 "
        f"(price refresh {scheduler_state}, uploads in {app.config['UPLOAD_ROOT']})",
        flush=True,
    )
    app.run(host=args.host, port=args.port, debug=False)

if __name__ == "__main__":
    main()
