import os

from waitress import serve

from campus_admin import create_app

app = create_app('production')

if __name__ == "__main__":
    host = os.getenv('HOST', '0.0.0.0')
    port = int(os.getenv('PORT', 5000))
    threads = int(os.getenv('WAITRESS_THREADS', 4))

    print("=" * 60)
    print("Campus admin API (production)")
    print("=" * 60)
    print(f"Running on: http://{host}:{port}")
    print(f"Server: Waitress, {threads} threads")
    print(f"Response cache: {'Redis' if app.config.get('REDIS_URL') else 'disabled'}")
    print("Press CTRL+C to stop the server")
    print("=" * 60)

    serve(app, host=host, port=port, threads=threads)
