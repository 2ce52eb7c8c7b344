"""Demo HTTPS server: serves "Hello World!" with a certificate/key pair issued by certforge."""
import argparse
import os
import ssl
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from dotenv import load_dotenv

load_dotenv()


class HelloHandler(BaseHTTPRequestHandler):
    """Answers every GET with a static body."""

    timeout = 5
    body = b"Hello World!\n"

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        self.wfile.write(self.body)

    def log_message(self, format, *args):
        print(f"[*] {self.address_string()} {format % args}")


def create_ssl_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    """TLS server context from PEM certificate and key files."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return context


class HelloServer:
    """HTTPS server bound to host:port."""

    def __init__(self, host: str, port: int, cert_path: str, key_path: str):
        self.host = host
        self.port = port
        self.context = create_ssl_context(cert_path, key_path)
        self.httpd = ThreadingHTTPServer((host, port), HelloHandler)
        self.httpd.socket = self.context.wrap_socket(self.httpd.socket, server_side=True)

    def start(self):
        print(f"[+] Serving HTTPS on https://{self.host}:{self.port}/")
        try:
            self.httpd.serve_forever()
        except KeyboardInterrupt:
            print("\n[*] Shutting down")
        finally:
            self.httpd.server_close()


def main():
    parser = argparse.ArgumentParser(description="Serve Hello World over HTTPS")
    parser.add_argument(
        "--cert",
        default=os.getenv("SERVER_CERT_PATH", "certs/server-cert.pem"),
        help="PEM certificate (default: certs/server-cert.pem)"
    )
    parser.add_argument(
        "--key",
        default=os.getenv("SERVER_KEY_PATH", "certs/server-key.pem"),
        help="PEM private key (default: certs/server-key.pem)"
    )
    parser.add_argument("--host", default=os.getenv("SERVER_HOST", "localhost"))
    parser.add_argument("--port", type=int, default=int(os.getenv("SERVER_PORT", 8443)))

    args = parser.parse_args()
    try:
        server = HelloServer(args.host, args.port, args.cert, args.key)
    except (OSError, ssl.SSLError) as e:
        print(f"[!] Cannot start server: {e}")
        raise SystemExit(1)
    server.start()


if __name__ == "__main__":
    main()
