"""
Phone Connect 主入口

可透過 python -m phone_connect 或 phone-connect 指令啟動伺服器
"""

import logging
import sys

import uvicorn

from phone_connect.base.logging_config import setup_logging
from phone_connect.config import (
    CDP_PORTS,
    POLL_INTERVAL,
    SERVER_HOST,
    SERVER_PORT,
    SSL_CERTFILE,
    SSL_KEYFILE,
    ssl_enabled,
)
from phone_connect.utils import discover_ipv4_addresses, get_local_ip, get_network_interfaces


def main():
    """主函式"""
    setup_logging()

    from phone_connect.app import app

    logger = logging.getLogger(__name__)
    https = ssl_enabled()
    scheme = "https" if https else "http"

    logger.info("🚀 Phone Connect 伺服器啟動")
    logger.info(f"🐍 Python: {sys.version}")
    logger.info(f"🔍 CDP Ports: {CDP_PORTS}")
    logger.info(f"⏱️ Snapshot 間隔: {POLL_INTERVAL}s")
    if https:
        logger.info(f"🔒 HTTPS 已啟用: {SSL_CERTFILE}")
    else:
        logger.warning("⚠️ 未找到憑證，以 HTTP 執行")

    addresses = discover_ipv4_addresses()
    interfaces = get_network_interfaces(addresses)
    logger.info("=" * 50)
    logger.info(f"📱 手機請連線: {scheme}://{get_local_ip(addresses)}:{SERVER_PORT}")
    logger.info(f"🔗 Local:     {scheme}://localhost:{SERVER_PORT}")
    for iface in interfaces:
        icon = "🔒" if iface.type == "Tailscale" else "📱"
        logger.info(f"{icon} {iface.type:<9} {scheme}://{iface.address}:{SERVER_PORT}")
    logger.info("=" * 50)
    if not https and any(iface.type == "Tailscale" for iface in interfaces):
        logger.info("🔒 偵測到 Tailscale，可直接使用上方的 Tailscale 位址安全連線")

    ssl_options = {"ssl_keyfile": str(SSL_KEYFILE), "ssl_certfile": str(SSL_CERTFILE)} if https else {}
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT, **ssl_options)


if __name__ == "__main__":
    main()
