"""
Persway entry point.
"""
import os
import sys
import traceback

print("[Persway] ========================================")
print("[Persway] Starting Persway")
print("[Persway] ========================================")

config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Persway] Config: {config_name}")
print(f"[Persway] PORT: {os.getenv('PORT', 'not set')}")
print(f"[Persway] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")
print(f"[Persway] REDIS_URL: {'set' if os.getenv('REDIS_URL') else 'NOT SET (simple cache)'}")

try:
    from persway import create_app
    app = create_app(config_name)
    print(f"[Persway] Routes: {len(list(app.url_map.iter_rules()))}")
except Exception as e:
    print(f"[Persway] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
