"""
Create (or promote) an admin user

Usage:
    python create_admin_user.py admin@example.com password123
"""
import sys

from golfapp.infrastructure.db.session import get_db
from golfapp.infrastructure.db.models import User
from golfapp.auth import hash_password

if len(sys.argv) != 3:
    print(__doc__)
    sys.exit(1)

email, password = sys.argv[1].strip().lower(), sys.argv[2]

db = next(get_db())

existing = db.query(User).filter(User.email == email).first()
if existing:
    existing.is_admin = True
    existing.password_hash = hash_password(password)
    db.commit()
    print(f"Promoted existing user to admin: {email} (ID: {existing.id})")
else:
    user = User(
        email=email,
        password_hash=hash_password(password),
        is_admin=True,
    )
    db.add(user)
    db.commit()
    print(f"Created admin user: {email} (ID: {user.id})")

db.close()
