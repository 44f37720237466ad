import os

# Config reads secrets at import time
os.environ.setdefault("ELEVENLABS_API_KEY", "test-xi-key")
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("PUBLIC_URL", "https://bridge.example.com")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+15550000000")
os.environ.setdefault("CALLS_REPO_BACKEND", "memory")
