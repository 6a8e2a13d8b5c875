import os

from src.app import create_app

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    print(f"🚀 [RUNNER] STARTING APP ON PORT {port}...")
    app.run(host="0.0.0.0", port=port, debug=True, use_reloader=False)
