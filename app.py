import argparse
import json
import sys
import time

from collision_resolver import cleanup_and_kill_container
from config import load_settings
from engine import get_docker_client
from image_manager import delete_image, pull_image
from lifecycle import HarnessContainer
from models import ANY_PORT, ContainerConfig
from template_manager import (
    TEMPLATE_CONFIGS,
    create_template_container,
    get_available_templates,
)
from utils import HarnessException, configure_logging, get_metrics


def parse_port(value: str):
    """Docker-style HOST:CONTAINER, or CONTAINER alone for any free host port"""
    if ":" in value:
        host_port, container_port = value.split(":", 1)
        return container_port, host_port
    return value, ANY_PORT


def parse_env(value: str):
    if "=" not in value:
        raise argparse.ArgumentTypeError(f"expected NAME=value, got {value!r}")
    key, _, val = value.partition("=")
    return key, val


def cmd_templates(args, settings):
    for template in get_available_templates():
        config = TEMPLATE_CONFIGS[template]
        print(f"{template:<10} {config['image']}:{config['tag']:<8} {config['description']}")
    return 0


def cmd_run(args, settings):
    client = get_docker_client(timeout=settings.docker_timeout)
    ports = dict(parse_port(p) for p in args.port)
    env = dict(args.env)

    if args.target in TEMPLATE_CONFIGS:
        container = create_template_container(
            args.target,
            name=args.name,
            tag=args.tag,
            env=env,
            ports=ports,
            client=client,
            settings=settings,
        )
    else:
        config = ContainerConfig(
            name=args.name, image=args.target, tag=args.tag, ports=ports, env=env
        )
        container = HarnessContainer(config, client=client, settings=settings)

    try:
        resolved = container.start()
        print(
            json.dumps(
                {
                    "id": container.get_container_id(),
                    "name": container.name,
                    "ports": resolved,
                    "volumes": container.get_volumes(),
                },
                indent=2,
            )
        )
        if args.hold > 0:
            time.sleep(args.hold)
        container.stop(args.stop_timeout)
    finally:
        container.cleanup()

    if args.metrics:
        print(get_metrics().decode())
    return 0


def cmd_pull(args, settings):
    pull_image(get_docker_client(timeout=settings.docker_timeout), args.image, args.tag)
    return 0


def cmd_rmi(args, settings):
    delete_image(get_docker_client(timeout=settings.docker_timeout), args.image, args.tag)
    return 0


def cmd_destroy(args, settings):
    client = get_docker_client(timeout=settings.docker_timeout)
    if not cleanup_and_kill_container(client, args.name):
        print(f"no container named {args.name}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="docker-harness",
        description="Disposable containers for integration tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s templates                         # List service templates
  %(prog)s run postgres --name it-test       # Start, report ports, clean up
  %(prog)s run nginx --port 80 --hold 30     # Any image, any free host port
  %(prog)s pull hello-world
  %(prog)s destroy it-test                   # Remove a leftover container
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("templates", help="List service templates")

    run_p = subparsers.add_parser("run", help="Start a container, then clean it up")
    run_p.add_argument("target", help="Template name or image")
    run_p.add_argument("--name", default="", help="Container name")
    run_p.add_argument("--tag", default="", help="Image tag (default: latest)")
    run_p.add_argument(
        "--port",
        action="append",
        default=[],
        help="CONTAINER or HOST:CONTAINER; repeatable. Merged into a template's ports",
    )
    run_p.add_argument(
        "--env", action="append", default=[], type=parse_env, help="NAME=value; repeatable"
    )
    run_p.add_argument(
        "--hold", type=float, default=0, help="Seconds to keep the container running"
    )
    run_p.add_argument(
        "--stop-timeout", type=int, default=None, help="Graceful stop timeout in seconds"
    )
    run_p.add_argument("--metrics", action="store_true", help="Print metrics at exit")

    pull_p = subparsers.add_parser("pull", help="Pull an image")
    pull_p.add_argument("image")
    pull_p.add_argument("--tag", default="")

    rmi_p = subparsers.add_parser("rmi", help="Remove an image")
    rmi_p.add_argument("image")
    rmi_p.add_argument("--tag", default="")

    destroy_p = subparsers.add_parser(
        "destroy", help="Kill and remove a container and its volumes by name"
    )
    destroy_p.add_argument("name")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    handlers = {
        "templates": cmd_templates,
        "run": cmd_run,
        "pull": cmd_pull,
        "rmi": cmd_rmi,
        "destroy": cmd_destroy,
    }

    try:
        return handlers[args.command](args, settings)
    except HarnessException as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
