import os
import sys

from campus_admin import create_app
from campus_admin.database_models import Account, Profile, Role
from campus_admin.extensions import db

app = create_app(os.getenv('FLASK_ENV', 'development'))

with app.app_context():
    # Drop all tables
    db.drop_all()

    # Create all tables with the current schema
    db.create_all()
    print("Database reset successfully!")

    email = os.getenv('ADMIN_EMAIL')
    password = os.getenv('ADMIN_PASSWORD')
    if not email or not password:
        print("ADMIN_EMAIL / ADMIN_PASSWORD not set, no super admin seeded")
        sys.exit(0)

    account = Account(email=email, password=password, is_verified=True)
    db.session.add(account)
    db.session.flush()
    db.session.add(Profile(
        account_id=account.id,
        email=account.email,
        name=os.getenv('ADMIN_NAME', 'Super Admin'),
        role=Role.SUPER_ADMIN.value,
    ))
    db.session.commit()
    print(f"Super admin seeded: {account.email}")
