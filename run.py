"""开发/部署启动入口：python run.py --env prod --port 8000"""
import argparse
import os

import uvicorn

from usdt_settlement.config import settings


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=settings.API_TITLE)
    parser.add_argument("--host", default=settings.APP_HOST, help="绑定地址")
    parser.add_argument("--port", type=int, default=settings.APP_PORT, help="监听端口")
    parser.add_argument("--env", choices=settings.ENVIRONMENTS, help="数据库环境，默认取 ENVIRONMENT")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="uvicorn 日志级别")
    parser.add_argument("--reload", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.env:
        settings.ENVIRONMENT = args.env
        # reload 模式下子进程重新读取环境变量
        os.environ["ENVIRONMENT"] = args.env
    uvicorn.run("usdt_settlement.main:app", host=args.host, port=args.port,
                log_level=args.log_level, reload=args.reload)


if __name__ == "__main__":
    main()
