import os

from app import create_app
from models import db, User

app = create_app()

ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@mao.gov.ph')
ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'admin12345')

with app.app_context():
    # Check if admin already exists to avoid duplicates
    if not User.query.filter_by(email=ADMIN_EMAIL).first():
        admin = User(
            email=ADMIN_EMAIL,
            full_name='MAO Super Admin',
            role='officer',
            is_super_admin=True,
            municipality='Culiram'
        )

        # This handles the hashing automatically
        admin.set_password(ADMIN_PASSWORD)
        admin.mark_verified(None)

        db.session.add(admin)
        db.session.commit()
        print("✅ Super admin created successfully!")
    else:
        print("⚠️  Super admin already exists.")
