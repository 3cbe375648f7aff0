"""Generate local secrets and write them into .env from .env.template.

CRYPTO_SECRET is the AES-256 key (32 bytes, hex) used by app.security.TokenCodec.
"""

import os
import secrets

crypto_secret = secrets.token_hex(32)
jwt_secret = secrets.token_urlsafe(32)

print(f"Generated CRYPTO_SECRET: {crypto_secret}")
print(f"Generated SUPABASE_JWT_SECRET: {jwt_secret}")

template_path = ".env.template"
env_path = ".env"

replacements = {
    "CRYPTO_SECRET=": f"CRYPTO_SECRET={crypto_secret}",
    "SUPABASE_JWT_SECRET=": f"SUPABASE_JWT_SECRET={jwt_secret}",
}

if os.path.exists(template_path):
    with open(template_path, "r") as f:
        lines = f.read().splitlines()

    new_lines = []
    for line in lines:
        prefix = next((p for p in replacements if line.startswith(p)), None)
        new_lines.append(replacements[prefix] if prefix else line)

    with open(env_path, "w") as f:
        f.write("\n".join(new_lines) + "\n")

    print(f"Successfully wrote to {env_path}")

else:
    print(f"Error: {template_path} not found. Please ensure it exists.")
