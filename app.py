from flask import Flask, request, jsonify, g
from flask_cors import CORS
from flask_jwt_extended import (
    JWTManager, create_access_token, create_refresh_token, jwt_required, get_jwt_identity, get_jwt
)
from datetime import datetime, date, timedelta
from functools import wraps
import math
import os
import random
from sqlalchemy import or_, func
from flask_mail import Mail, Message

from config import config
from models import (
    db, User, Seedling, AssociationSeedlingDistribution, FarmerSeedlingDistribution,
    MonitoringRecord, Harvest, FiberDelivery, BuyerListing, ActivityLog, Notification, TokenBlocklist,
    SEEDLING_STATUSES, ASSOCIATION_DISTRIBUTION_STATUSES, DELIVERY_STATUSES, PAYMENT_STATUSES
)
from monitoring import (
    to_date, generate_monitoring_id, is_overdue, latest_record_per_farmer, upcoming_monitoring,
    overdue_monitoring, calculate_stats, filter_records, sort_by_date, validate_monitoring_form
)
from stats import (
    association_distribution_status, seedling_stats, distribution_stats, harvest_stats,
    farmer_harvest_summary, delivery_stats, inventory_stats
)

SELF_REGISTER_ROLES = ('farmer', 'buyer', 'association_officer')
CUSAFA_ROLES = ('officer', 'association_officer')

DELIVERY_TERMINAL_STATUSES = ('Completed', 'Cancelled')
DELIVERY_STATUS_TIMESTAMPS = {
    'Confirmed': 'confirmed_at',
    'Delivered': 'delivered_at',
    'Completed': 'completed_at',
    'Cancelled': 'cancelled_at'
}
LISTING_CLASSES = ('class_a', 'class_b', 'class_c')


def create_app(config_name=None):
    config_name = config_name or os.environ.get('FLASK_CONFIG', 'development')
    app = Flask(__name__)
    app.config.from_object(config.get(config_name, config['default']))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions (SQLAlchemy)
    db.init_app(app)

    CORS(app,
     resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
     supports_credentials=True,
     allow_headers=["Content-Type", "Authorization"],
     methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    jwt = JWTManager(app)
    mail = Mail(app)

    # --- JWT CALLBACKS ---

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        jti = jwt_payload["jti"]
        return TokenBlocklist.query.filter_by(jti=jti).first() is not None

    @jwt.revoked_token_loader
    def revoked_token_callback(jwt_header, jwt_payload):
        return jsonify({"error": "The session has expired or been terminated. Please log in again."}), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"error": "Token has expired. Please log in again."}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return jsonify({"error": f"Invalid token: {reason}"}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return jsonify({"error": "Authorization token is required"}), 401

    # --- ERROR HANDLERS ---

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return jsonify({'error': 'Request body is too large'}), 413

    # --- HELPER FUNCTIONS ---

    def role_required(*roles):
        """Require a valid access token for an active user, optionally limited to ``roles``."""
        def decorator(fn):
            @wraps(fn)
            @jwt_required()
            def wrapper(*args, **kwargs):
                user = db.session.get(User, int(get_jwt_identity()))
                if not user or not user.is_active:
                    return jsonify({'error': 'User not found or inactive'}), 401
                if roles and user.role not in roles:
                    return jsonify({
                        'error': f"Access denied. This resource is only available to: {', '.join(roles)}"
                    }), 403
                g.current_user = user
                return fn(*args, **kwargs)
            return wrapper
        return decorator

    def log_activity(action, entity_type=None, entity_id=None, details=None, user_id=None):
        try:
            if user_id is None:
                user = g.get('current_user')
                user_id = user.id if user else None

            log = ActivityLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                details=details,
                ip_address=request.remote_addr
            )
            db.session.add(log)
            db.session.commit()
        except Exception as e:
            app.logger.error(f"Activity log error: {e}")
            db.session.rollback()

    def broadcast_notification(title, message, target_user_id=None):
        """
        Creates a notification record.
        target_user_id: None for System-Wide, or ID for specific user.
        The caller commits.
        """
        db.session.add(Notification(
            user_id=target_user_id,
            title=title,
            message=message,
            is_read=False,
            created_at=datetime.utcnow()
        ))

    def server_error(e, context):
        db.session.rollback()
        app.logger.exception(f"{context}: {e}")
        return jsonify({'error': str(e)}), 500

    def get_payload():
        return request.get_json(silent=True) or {}

    def parse_date(value, field):
        try:
            return to_date(value)
        except ValueError:
            raise ValueError(f"Invalid {field}. Use YYYY-MM-DD format")

    def parse_int(value, field):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{field} must be a whole number")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{field} must be a whole number")

    def parse_float(value, field):
        if value is None or value == '':
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{field} must be a number")
        if not math.isfinite(number):
            raise ValueError(f"{field} must be a number")
        return number

    def as_list(value):
        if not value:
            return []
        return [value] if isinstance(value, str) else list(value)

    def as_bool(value):
        if isinstance(value, str):
            return value.strip().lower() in ('true', '1', 'yes', 'on')
        return bool(value)

    def is_cusafa(user):
        return user.role in CUSAFA_ROLES

    # ============ Service Routes ============

    @app.route('/')
    def index():
        return jsonify({
            'message': 'MAO Culiram Abaca System API',
            'version': '1.0.0',
            'status': 'running'
        }), 200

    @app.route('/health')
    def health():
        return jsonify({'status': 'OK', 'timestamp': datetime.utcnow().isoformat()}), 200

    # ============ Authentication Routes ============

    @app.route('/api/auth/register', methods=['POST'])
    def register():
        try:
            data = get_payload()
            email = (data.get('email') or '').strip().lower()
            password = data.get('password') or ''
            full_name = (data.get('full_name') or '').strip()
            role = data.get('role', 'farmer')

            if not email or not password or not full_name:
                return jsonify({'error': 'Email, password and full name are required'}), 400
            if len(password) < 8:
                return jsonify({'error': 'Password must be at least 8 characters'}), 400
            if role not in SELF_REGISTER_ROLES:
                return jsonify({'error': f"Role must be one of: {', '.join(SELF_REGISTER_ROLES)}"}), 400
            if role == 'buyer' and not data.get('business_name'):
                return jsonify({'error': 'Business name is required for buyers'}), 400
            if role == 'association_officer' and not data.get('association_name'):
                return jsonify({'error': 'Association name is required for association officers'}), 400

            if User.query.filter_by(email=email).first():
                return jsonify({'error': 'Email already exists'}), 400

            user = User(
                email=email,
                full_name=full_name,
                role=role,
                contact_number=data.get('contact_number'),
                address=data.get('address'),
                municipality=data.get('municipality'),
                barangay=data.get('barangay'),
                association_name=data.get('association_name'),
                business_name=data.get('business_name'),
                business_address=data.get('business_address'),
                farm_area_hectares=parse_float(data.get('farm_area_hectares'), 'Farm area'),
                is_verified=False,
                verification_status='pending'
            )
            user.set_password(password)

            db.session.add(user)
            db.session.commit()
            app.logger.info(f"New {role} registration: {email}")

            return jsonify({
                'message': 'Registration successful. Your account is pending verification.',
                'user': user.to_dict()
            }), 201
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Registration error')

    @app.route('/api/auth/login', methods=['POST'])
    def login():
        data = get_payload()
        email = (data.get('email') or '').strip().lower()

        user = User.query.filter_by(email=email).first()

        if not user or not user.check_password(data.get('password') or ''):
            return jsonify({'error': 'Invalid credentials'}), 401

        if not user.is_active:
            return jsonify({'error': 'Account is inactive'}), 403

        if user.verification_status == 'rejected':
            reason = user.rejection_reason or 'No reason provided'
            return jsonify({'error': f"Your account application was rejected. Reason: {reason}"}), 403

        if not user.is_verified:
            return jsonify({
                'error': 'Your account is pending verification. Please wait for admin approval before logging in.'
            }), 403

        claims = {'role': user.role, 'is_super_admin': bool(user.is_super_admin)}
        access_token = create_access_token(identity=str(user.id), additional_claims=claims)
        refresh_token = create_refresh_token(identity=str(user.id), additional_claims=claims)

        user.last_login = datetime.utcnow()
        db.session.commit()
        log_activity('LOGIN', 'User', user.id, f"{user.email} logged in", user_id=user.id)

        return jsonify({
            'access_token': access_token,
            'refresh_token': refresh_token,
            'user': user.to_dict()
        }), 200

    @app.route('/api/auth/refresh', methods=['POST'])
    @jwt_required(refresh=True)
    def refresh():
        user = db.session.get(User, int(get_jwt_identity()))
        if not user or not user.is_active:
            return jsonify({'error': 'User not found or inactive'}), 401
        claims = {'role': user.role, 'is_super_admin': bool(user.is_super_admin)}
        access_token = create_access_token(identity=str(user.id), additional_claims=claims)
        return jsonify({'access_token': access_token}), 200

    @app.route('/api/auth/me', methods=['GET'])
    @role_required()
    def get_current_user():
        return jsonify(g.current_user.to_dict()), 200

    @app.route('/api/auth/me', methods=['PUT'])
    @role_required()
    def update_current_user():
        try:
            data = get_payload()
            user = g.current_user
            for field in ['full_name', 'contact_number', 'address', 'municipality', 'barangay',
                          'association_name', 'business_name', 'business_address']:
                if field in data:
                    setattr(user, field, data[field])
            if 'farm_area_hectares' in data:
                user.farm_area_hectares = parse_float(data['farm_area_hectares'], 'Farm area')
            if not (user.full_name or '').strip():
                return jsonify({'error': 'Full name cannot be empty'}), 400

            db.session.commit()
            log_activity('UPDATE PROFILE', 'User', user.id)
            return jsonify({'message': 'Profile updated', 'user': user.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Profile update error')

    @app.route('/api/auth/logout', methods=['POST'])
    @jwt_required(verify_type=False)
    def logout():
        try:
            token = get_jwt()
            db.session.add(TokenBlocklist(jti=token["jti"], created_at=datetime.utcnow()))
            db.session.commit()
            log_activity('LOGOUT', 'User', get_jwt_identity(), user_id=int(get_jwt_identity()))
            return jsonify({"message": f"{token['type'].capitalize()} token successfully revoked"}), 200
        except Exception as e:
            return server_error(e, 'Logout error')

    @app.route('/api/auth/forgot-password', methods=['POST'])
    def request_otp():
        email = (get_payload().get('email') or '').strip().lower()
        user = User.query.filter_by(email=email).first()
        if not user:
            return jsonify({"error": "This email is not registered."}), 404

        otp = str(random.randint(100000, 999999))
        user.otp_code = otp
        user.otp_expiry = datetime.utcnow() + timedelta(minutes=app.config['OTP_EXPIRY_MINUTES'])
        db.session.commit()

        try:
            msg = Message(
                subject="MAO Culiram Abaca System | Password Reset Code",
                recipients=[email]
            )
            msg.body = (
                f"A password reset was requested for your account. Your 6-digit verification code is: {otp}\n"
                f"The code expires in {app.config['OTP_EXPIRY_MINUTES']} minutes."
            )
            mail.send(msg)
            return jsonify({"message": "Verification code sent to your email."}), 200
        except Exception as e:
            app.logger.error(f"SMTP error: {e}")
            return jsonify({"error": "Mail delivery failure. Please try again later."}), 500

    def find_valid_otp_user(data):
        email = (data.get('email') or '').strip().lower()
        otp = str(data.get('otp') or '').strip()
        user = User.query.filter_by(email=email).first()
        if not user or not user.otp_code or user.otp_code != otp:
            return None
        if not user.otp_expiry or user.otp_expiry < datetime.utcnow():
            return None
        return user

    @app.route('/api/auth/verify-otp', methods=['POST'])
    def verify_otp():
        if not find_valid_otp_user(get_payload()):
            return jsonify({"error": "Invalid or expired verification code."}), 400
        return jsonify({"message": "Identity verified successfully."}), 200

    @app.route('/api/auth/reset-password', methods=['POST'])
    def reset_password():
        data = get_payload()
        new_password = data.get('new_password') or ''

        user = find_valid_otp_user(data)
        if not user:
            return jsonify({"error": "Invalid or expired verification code."}), 400
        if len(new_password) < 8:
            return jsonify({"error": "Password must be at least 8 characters"}), 400

        user.set_password(new_password)
        user.otp_code = None
        user.otp_expiry = None
        db.session.commit()
        log_activity('RESET PASSWORD', 'User', user.id, user_id=user.id)
        return jsonify({"message": "Password updated successfully."}), 200

    # ============ MAO Administration Routes ============

    def account_counts(role):
        query = User.query.filter_by(role=role)
        return {
            'total': query.count(),
            'verified': query.filter_by(verification_status='verified').count(),
            'pending': query.filter_by(verification_status='pending').count()
        }

    @app.route('/api/mao/dashboard', methods=['GET'])
    @role_required('officer')
    def mao_dashboard():
        try:
            records = [r.to_dict() for r in MonitoringRecord.query.all()]
            recent = ActivityLog.query.order_by(ActivityLog.created_at.desc()).limit(10).all()
            return jsonify({
                'farmers': account_counts('farmer'),
                'buyers': account_counts('buyer'),
                'associations': account_counts('association_officer'),
                'seedlings': {
                    'direct_distributions': Seedling.query.count(),
                    'direct_quantity': int(db.session.query(
                        func.coalesce(func.sum(Seedling.quantity_distributed), 0)).scalar()),
                    'association_distributions': AssociationSeedlingDistribution.query.count(),
                    'association_quantity': int(db.session.query(
                        func.coalesce(func.sum(AssociationSeedlingDistribution.quantity_distributed), 0)).scalar())
                },
                'monitoring': calculate_stats(records),
                'pending_harvests': Harvest.query.filter_by(status='Pending Verification').count(),
                'in_transit_deliveries': FiberDelivery.query.filter_by(status='In Transit').count(),
                'recent_activities': [log.to_dict() for log in recent]
            }), 200
        except Exception as e:
            return server_error(e, 'Dashboard error')

    @app.route('/api/mao/create-officer', methods=['POST'])
    @role_required('officer')
    def create_officer():
        if not g.current_user.is_super_admin:
            return jsonify({'error': 'Only the super admin can create officer accounts'}), 403
        try:
            data = get_payload()
            email = (data.get('email') or '').strip().lower()
            password = data.get('password') or ''
            full_name = (data.get('full_name') or '').strip()

            if not email or not password or not full_name:
                return jsonify({'error': 'Email, password and full name are required'}), 400
            if len(password) < 8:
                return jsonify({'error': 'Password must be at least 8 characters'}), 400
            if User.query.filter_by(email=email).first():
                return jsonify({'error': 'Email already exists'}), 400

            officer = User(
                email=email,
                full_name=full_name,
                role='officer',
                contact_number=data.get('contact_number'),
                municipality=data.get('municipality'),
                is_super_admin=False
            )
            officer.set_password(password)
            officer.mark_verified(g.current_user.id)

            db.session.add(officer)
            db.session.commit()
            log_activity('CREATE OFFICER', 'User', officer.id, f"Created officer {email}")
            return jsonify({'message': 'Officer account created', 'user': officer.to_dict()}), 201
        except Exception as e:
            return server_error(e, 'Create officer error')

    @app.route('/api/mao/officers', methods=['GET'])
    @role_required('officer')
    def list_officers():
        officers = User.query.filter_by(role='officer').order_by(User.created_at.desc()).all()
        return jsonify({'officers': [o.to_dict() for o in officers]}), 200

    @app.route('/api/mao/users', methods=['GET'])
    @role_required('officer')
    def list_users():
        role = request.args.get('role')
        status = request.args.get('status')
        search = request.args.get('search', '').strip()

        query = User.query.filter(User.role.in_(SELF_REGISTER_ROLES))
        if role and role != 'all':
            query = query.filter(User.role == role)
        if status and status != 'all':
            query = query.filter(User.verification_status == status)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                User.full_name.ilike(term),
                User.email.ilike(term),
                User.business_name.ilike(term),
                User.association_name.ilike(term)
            ))

        users = query.order_by(User.created_at.desc()).all()
        return jsonify({'users': [u.to_dict() for u in users], 'count': len(users)}), 200

    @app.route('/api/mao/users/<int:id>', methods=['GET'])
    @role_required('officer')
    def get_user(id):
        user = db.get_or_404(User, id)
        return jsonify(user.to_dict()), 200

    @app.route('/api/mao/users/<int:id>/verify', methods=['POST'])
    @role_required('officer')
    def verify_user(id):
        try:
            user = db.get_or_404(User, id)
            if user.role == 'officer':
                return jsonify({'error': 'Officer accounts are verified on creation'}), 400

            user.mark_verified(g.current_user.id)
            broadcast_notification(
                'Account Verified',
                'Your account has been verified. You can now log in.',
                target_user_id=user.id
            )
            db.session.commit()
            app.logger.info(f"User {user.email} verified by {g.current_user.email}")
            log_activity('VERIFY USER', 'User', user.id, f"Verified {user.email}")
            return jsonify({'message': 'User verified', 'user': user.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'Verify user error')

    @app.route('/api/mao/users/<int:id>/reject', methods=['POST'])
    @role_required('officer')
    def reject_user(id):
        try:
            user = db.get_or_404(User, id)
            reason = (get_payload().get('reason') or '').strip()
            if not reason:
                return jsonify({'error': 'Rejection reason is required'}), 400
            if user.role == 'officer':
                return jsonify({'error': 'Officer accounts cannot be rejected'}), 400

            user.is_verified = False
            user.verification_status = 'rejected'
            user.rejection_reason = reason
            user.verified_by = g.current_user.id
            user.verified_at = datetime.utcnow()
            broadcast_notification(
                'Account Rejected',
                f"Your account application was rejected. Reason: {reason}",
                target_user_id=user.id
            )
            db.session.commit()
            log_activity('REJECT USER', 'User', user.id, f"Rejected {user.email}: {reason}")
            return jsonify({'message': 'User rejected', 'user': user.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'Reject user error')

    @app.route('/api/mao/users/<int:id>/status', methods=['PUT'])
    @role_required('officer')
    def update_user_status(id):
        try:
            user = db.get_or_404(User, id)
            data = get_payload()
            if 'is_active' not in data:
                return jsonify({'error': 'is_active is required'}), 400
            if user.id == g.current_user.id:
                return jsonify({'error': 'You cannot change your own account status'}), 400

            user.is_active = as_bool(data['is_active'])
            db.session.commit()
            state = 'activated' if user.is_active else 'deactivated'
            log_activity('UPDATE USER STATUS', 'User', user.id, f"{user.email} {state}")
            return jsonify({'message': f'User {state}', 'user': user.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'User status error')

    @app.route('/api/mao/users/<int:id>', methods=['DELETE'])
    @role_required('officer')
    def delete_user(id):
        if not g.current_user.is_super_admin:
            return jsonify({'error': 'Only the super admin can delete accounts'}), 403
        if id == g.current_user.id:
            return jsonify({'error': 'You cannot delete your own account'}), 400
        try:
            user = db.get_or_404(User, id)
            email = user.email
            db.session.delete(user)
            db.session.commit()
            log_activity('DELETE USER', 'User', id, f"Deleted {email}")
            return jsonify({'message': 'User deleted successfully'}), 200
        except Exception as e:
            return server_error(e, 'Delete user error')

    @app.route('/api/mao/farmers', methods=['GET'])
    @role_required('officer')
    def list_farmers():
        search = request.args.get('search', '').strip()
        query = User.query.filter_by(role='farmer', is_verified=True, is_active=True)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(User.full_name.ilike(term), User.association_name.ilike(term)))
        farmers = query.order_by(User.full_name.asc()).all()
        return jsonify({'farmers': [f.to_dict() for f in farmers]}), 200

    @app.route('/api/mao/farmers/<int:id>', methods=['GET'])
    @role_required('officer')
    def get_farmer(id):
        farmer = User.query.filter_by(id=id, role='farmer').first()
        if not farmer:
            return jsonify({'error': 'Farmer not found'}), 404
        return jsonify(farmer.to_dict()), 200

    @app.route('/api/mao/associations', methods=['GET'])
    @role_required('officer')
    def list_associations():
        associations = User.query.filter_by(
            role='association_officer', is_verified=True, is_active=True
        ).order_by(User.association_name.asc()).all()
        return jsonify({'associations': [a.to_summary() for a in associations]}), 200

    @app.route('/api/buyers', methods=['GET'])
    @role_required()
    def list_buyers():
        buyers = User.query.filter_by(role='buyer', is_verified=True, is_active=True) \
            .order_by(User.business_name.asc()).all()
        return jsonify({'buyers': [b.to_summary() for b in buyers]}), 200

    # ============ Seedling Routes (MAO -> Farmer) ============

    def scoped_seedlings():
        query = Seedling.query
        if not g.current_user.is_super_admin:
            query = query.filter(Seedling.distributed_by == g.current_user.id)
        return query

    def find_farmer(farmer_id):
        if farmer_id in (None, ''):
            return None
        return User.query.filter_by(id=parse_int(farmer_id, 'Farmer ID'), role='farmer').first()

    @app.route('/api/seedlings/all', methods=['GET'])
    @role_required('officer')
    def list_seedlings():
        try:
            query = scoped_seedlings()

            variety = request.args.get('variety')
            status = request.args.get('status')
            farmer_id = request.args.get('farmer_id')
            date_from = parse_date(request.args.get('date_from'), 'date_from')
            date_to = parse_date(request.args.get('date_to'), 'date_to')
            limit = request.args.get('limit', 100, type=int)
            offset = request.args.get('offset', 0, type=int)

            if variety:
                query = query.filter(Seedling.variety.ilike(f"%{variety}%"))
            if status:
                query = query.filter(Seedling.status == status)
            if farmer_id:
                query = query.filter(Seedling.recipient_farmer_id == parse_int(farmer_id, 'farmer_id'))
            if date_from:
                query = query.filter(Seedling.date_distributed >= date_from)
            if date_to:
                query = query.filter(Seedling.date_distributed <= date_to)

            total = query.count()
            seedlings = query.order_by(Seedling.date_distributed.desc(), Seedling.id.desc()) \
                .offset(offset).limit(limit).all()
            return jsonify({
                'seedlings': [s.to_dict(include_relations=True) for s in seedlings],
                'total': total
            }), 200
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    @app.route('/api/seedlings/stats', methods=['GET'])
    @role_required('officer')
    def get_seedling_stats():
        rows = [s.to_dict() for s in scoped_seedlings().all()]
        return jsonify(seedling_stats(rows)), 200

    @app.route('/api/seedlings', methods=['POST'])
    @role_required('officer')
    def create_seedling():
        try:
            data = get_payload()
            variety = (data.get('variety') or '').strip()
            quantity = parse_int(data.get('quantity_distributed'), 'Quantity')
            if not variety:
                return jsonify({'error': 'Variety is required'}), 400
            if quantity <= 0:
                return jsonify({'error': 'Quantity must be greater than 0'}), 400

            status = data.get('status', 'distributed_to_farmer')
            if status not in SEEDLING_STATUSES:
                return jsonify({'error': 'Invalid status'}), 400

            farmer = None
            if data.get('recipient_farmer_id'):
                farmer = find_farmer(data['recipient_farmer_id'])
                if not farmer:
                    return jsonify({'error': 'Invalid farmer selected'}), 400

            seedling = Seedling(
                variety=variety,
                source_supplier=data.get('source_supplier'),
                quantity_distributed=quantity,
                date_distributed=parse_date(data.get('date_distributed'), 'date_distributed') or date.today(),
                recipient_farmer_id=farmer.id if farmer else None,
                recipient_association=data.get('recipient_association') or (farmer.association_name if farmer else None),
                remarks=data.get('remarks'),
                status=status,
                distributed_by=g.current_user.id,
                seedling_photo=data.get('seedling_photo'),
                packaging_photo=data.get('packaging_photo'),
                quality_photo=data.get('quality_photo')
            )
            db.session.add(seedling)
            if farmer:
                broadcast_notification(
                    'Seedlings Received',
                    f"You received {quantity} {variety} seedlings from the MAO.",
                    target_user_id=farmer.id
                )
            db.session.commit()
            log_activity('CREATE SEEDLING DISTRIBUTION', 'Seedling', seedling.id, f"{quantity} {variety}")
            return jsonify({'message': 'Seedling distribution recorded', 'seedling': seedling.to_dict()}), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Create seedling error')

    @app.route('/api/seedlings/<int:id>', methods=['GET'])
    @role_required('officer')
    def get_seedling(id):
        seedling = scoped_seedlings().filter(Seedling.id == id).first()
        if not seedling:
            return jsonify({'error': 'Seedling distribution not found'}), 404
        return jsonify(seedling.to_dict(include_relations=True)), 200

    @app.route('/api/seedlings/<int:id>', methods=['PUT'])
    @role_required('officer')
    def update_seedling(id):
        try:
            seedling = scoped_seedlings().filter(Seedling.id == id).first()
            if not seedling:
                return jsonify({'error': 'Seedling distribution not found'}), 404
            data = get_payload()

            if 'variety' in data:
                if not (data['variety'] or '').strip():
                    return jsonify({'error': 'Variety is required'}), 400
                seedling.variety = data['variety'].strip()
            if 'quantity_distributed' in data:
                quantity = parse_int(data['quantity_distributed'], 'Quantity')
                if quantity <= 0:
                    return jsonify({'error': 'Quantity must be greater than 0'}), 400
                seedling.quantity_distributed = quantity
            if 'status' in data:
                if data['status'] not in SEEDLING_STATUSES:
                    return jsonify({'error': 'Invalid status'}), 400
                seedling.status = data['status']
            if 'recipient_farmer_id' in data:
                farmer = find_farmer(data['recipient_farmer_id'])
                if data['recipient_farmer_id'] and not farmer:
                    return jsonify({'error': 'Invalid farmer selected'}), 400
                seedling.recipient_farmer_id = farmer.id if farmer else None
            if 'date_distributed' in data:
                seedling.date_distributed = parse_date(data['date_distributed'], 'date_distributed') or seedling.date_distributed
            for field in ['source_supplier', 'recipient_association', 'remarks',
                          'seedling_photo', 'packaging_photo', 'quality_photo']:
                if field in data:
                    setattr(seedling, field, data[field])

            db.session.commit()
            log_activity('UPDATE SEEDLING DISTRIBUTION', 'Seedling', seedling.id)
            return jsonify({'message': 'Seedling distribution updated', 'seedling': seedling.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update seedling error')

    @app.route('/api/seedlings/<int:id>', methods=['DELETE'])
    @role_required('officer')
    def delete_seedling(id):
        try:
            seedling = scoped_seedlings().filter(Seedling.id == id).first()
            if not seedling:
                return jsonify({'error': 'Seedling distribution not found'}), 404
            db.session.delete(seedling)
            db.session.commit()
            log_activity('DELETE SEEDLING DISTRIBUTION', 'Seedling', id)
            return jsonify({'message': 'Seedling distribution deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete seedling error')

    @app.route('/api/seedlings/farmer/my-seedlings', methods=['GET'])
    @role_required('farmer')
    def my_seedlings():
        seedlings = Seedling.query.filter_by(recipient_farmer_id=g.current_user.id) \
            .order_by(Seedling.date_distributed.desc()).all()
        return jsonify({'seedlings': [s.to_dict(include_relations=True) for s in seedlings]}), 200

    def apply_planting(row, data):
        """Stamp planting details on a seedling or farmer distribution row."""
        planting_date = parse_date(data.get('planting_date'), 'planting_date')
        if not planting_date:
            raise ValueError('Planting date is required')
        row.status = 'planted'
        row.planting_date = planting_date
        row.planting_location = data.get('planting_location')
        row.planting_photo_1 = data.get('planting_photo_1')
        row.planting_photo_2 = data.get('planting_photo_2')
        row.planting_photo_3 = data.get('planting_photo_3')
        row.planting_notes = data.get('planting_notes')
        row.planted_by = g.current_user.id
        row.planted_at = datetime.utcnow()

    @app.route('/api/seedlings/farmer/<int:id>/mark-planted', methods=['PUT'])
    @role_required('farmer')
    def mark_seedling_planted(id):
        try:
            seedling = db.session.get(Seedling, id)
            if not seedling:
                return jsonify({'error': 'Seedling distribution not found'}), 404
            if seedling.recipient_farmer_id != g.current_user.id:
                return jsonify({'error': 'You can only update seedlings distributed to you'}), 403

            apply_planting(seedling, get_payload())
            db.session.commit()
            log_activity('MARK SEEDLING PLANTED', 'Seedling', seedling.id)
            return jsonify({'message': 'Seedlings marked as planted', 'seedling': seedling.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Mark planted error')

    # ============ Association Seedling Routes (MAO -> Association -> Farmer) ============

    def find_association(association_id):
        if association_id in (None, ''):
            return None
        return User.query.filter_by(
            id=parse_int(association_id, 'Association ID'),
            role='association_officer',
            is_verified=True
        ).first()

    def refresh_association_status(distribution):
        if distribution.status == 'cancelled':
            return
        distribution.status = association_distribution_status(
            distribution.quantity_distributed, distribution.distributed_to_farmers
        )

    def scoped_distribution_stats(user):
        assoc_query = AssociationSeedlingDistribution.query
        farmer_query = FarmerSeedlingDistribution.query
        if user.role == 'association_officer':
            assoc_query = assoc_query.filter_by(recipient_association_id=user.id)
            farmer_query = farmer_query.filter_by(distributed_by_association=user.id)
        elif user.role == 'officer' and not user.is_super_admin:
            assoc_query = assoc_query.filter_by(distributed_by=user.id)
            farmer_query = farmer_query.join(AssociationSeedlingDistribution).filter(
                AssociationSeedlingDistribution.distributed_by == user.id
            )
        return distribution_stats(
            [d.to_dict() for d in assoc_query.all()],
            [d.to_dict() for d in farmer_query.all()]
        )

    @app.route('/api/association-seedlings/mao/associations', methods=['GET'])
    @role_required('officer')
    def mao_association_distributions():
        query = AssociationSeedlingDistribution.query
        if not g.current_user.is_super_admin:
            query = query.filter_by(distributed_by=g.current_user.id)
        distributions = query.order_by(AssociationSeedlingDistribution.date_distributed.desc()).all()
        return jsonify({'distributions': [d.to_dict(include_relations=True) for d in distributions]}), 200

    @app.route('/api/association-seedlings/mao/distribute-to-association', methods=['POST'])
    @role_required('officer')
    def distribute_to_association():
        try:
            data = get_payload()
            variety = (data.get('variety') or '').strip()
            if not variety:
                return jsonify({'error': 'Variety is required'}), 400
            quantity = parse_int(data.get('quantity_distributed'), 'Quantity')
            if quantity <= 0:
                return jsonify({'error': 'Quantity must be greater than 0'}), 400

            association = find_association(data.get('recipient_association_id'))
            if not association:
                return jsonify({'error': 'Invalid association selected'}), 400

            distribution = AssociationSeedlingDistribution(
                variety=variety,
                source_supplier=data.get('source_supplier'),
                quantity_distributed=quantity,
                date_distributed=parse_date(data.get('date_distributed'), 'date_distributed') or date.today(),
                recipient_association_id=association.id,
                remarks=data.get('remarks'),
                status='distributed_to_association',
                distributed_by=g.current_user.id,
                seedling_photo=data.get('seedling_photo'),
                packaging_photo=data.get('packaging_photo'),
                quality_photo=data.get('quality_photo')
            )
            db.session.add(distribution)
            broadcast_notification(
                'Seedlings Received',
                f"Your association received {quantity} {variety} seedlings from the MAO.",
                target_user_id=association.id
            )
            db.session.commit()
            app.logger.info(f"{quantity} {variety} seedlings distributed to association {association.id}")
            log_activity('DISTRIBUTE TO ASSOCIATION', 'AssociationSeedlingDistribution', distribution.id,
                         f"{quantity} {variety} to {association.association_name}")
            return jsonify({
                'message': 'Seedlings distributed to association',
                'distribution': distribution.to_dict(include_relations=True)
            }), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Distribute to association error')

    @app.route('/api/association-seedlings/mao/associations/<int:id>', methods=['PUT'])
    @role_required('officer')
    def update_association_distribution(id):
        try:
            query = AssociationSeedlingDistribution.query.filter_by(id=id)
            if not g.current_user.is_super_admin:
                query = query.filter_by(distributed_by=g.current_user.id)
            distribution = query.first()
            if not distribution:
                return jsonify({'error': 'Distribution not found'}), 404
            data = get_payload()

            if 'variety' in data:
                if not (data['variety'] or '').strip():
                    return jsonify({'error': 'Variety is required'}), 400
                distribution.variety = data['variety'].strip()
            if 'quantity_distributed' in data:
                quantity = parse_int(data['quantity_distributed'], 'Quantity')
                if quantity <= 0:
                    return jsonify({'error': 'Quantity must be greater than 0'}), 400
                already = distribution.distributed_to_farmers
                if quantity < already:
                    return jsonify({
                        'error': f"Quantity cannot be less than the {already} seedlings already distributed to farmers"
                    }), 400
                distribution.quantity_distributed = quantity
            if 'recipient_association_id' in data:
                association = find_association(data['recipient_association_id'])
                if not association:
                    return jsonify({'error': 'Invalid association selected'}), 400
                distribution.recipient_association_id = association.id
            if 'date_distributed' in data:
                distribution.date_distributed = parse_date(data['date_distributed'], 'date_distributed') or distribution.date_distributed
            for field in ['source_supplier', 'remarks', 'seedling_photo', 'packaging_photo', 'quality_photo']:
                if field in data:
                    setattr(distribution, field, data[field])

            refresh_association_status(distribution)
            db.session.commit()
            log_activity('UPDATE ASSOCIATION DISTRIBUTION', 'AssociationSeedlingDistribution', distribution.id)
            return jsonify({
                'message': 'Distribution updated',
                'distribution': distribution.to_dict(include_relations=True)
            }), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update association distribution error')

    @app.route('/api/association-seedlings/mao/associations/<int:id>', methods=['DELETE'])
    @role_required('officer')
    def delete_association_distribution(id):
        try:
            query = AssociationSeedlingDistribution.query.filter_by(id=id)
            if not g.current_user.is_super_admin:
                query = query.filter_by(distributed_by=g.current_user.id)
            distribution = query.first()
            if not distribution:
                return jsonify({'error': 'Distribution not found'}), 404

            # delete-orphan cascade removes the farmer distributions
            db.session.delete(distribution)
            db.session.commit()
            log_activity('DELETE ASSOCIATION DISTRIBUTION', 'AssociationSeedlingDistribution', id)
            return jsonify({'message': 'Distribution deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete association distribution error')

    @app.route('/api/association-seedlings/mao/stats', methods=['GET'])
    @role_required('officer')
    def mao_distribution_stats():
        return jsonify(scoped_distribution_stats(g.current_user)), 200

    @app.route('/api/association-seedlings/association/received', methods=['GET'])
    @role_required('association_officer')
    def association_received():
        distributions = AssociationSeedlingDistribution.query \
            .filter_by(recipient_association_id=g.current_user.id) \
            .order_by(AssociationSeedlingDistribution.date_distributed.desc()).all()
        return jsonify({'distributions': [d.to_dict(include_relations=True) for d in distributions]}), 200

    @app.route('/api/association-seedlings/association/farmers', methods=['GET'])
    @role_required('association_officer')
    def association_farmers():
        association_name = (g.current_user.association_name or '').strip()
        if not association_name:
            return jsonify({'farmers': []}), 200
        farmers = User.query.filter(
            User.role == 'farmer',
            User.is_verified == True,
            func.lower(User.association_name) == association_name.lower()
        ).order_by(User.full_name.asc()).all()
        return jsonify({'farmers': [f.to_summary() for f in farmers]}), 200

    @app.route('/api/association-seedlings/association/distribute-to-farmers', methods=['POST'])
    @role_required('association_officer')
    def distribute_to_farmers():
        try:
            data = get_payload()
            entries = data.get('farmer_distributions')
            if not data.get('association_distribution_id') or not isinstance(entries, list) or not entries:
                return jsonify({'error': 'association_distribution_id and farmer_distributions are required'}), 400

            parent = AssociationSeedlingDistribution.query.filter_by(
                id=parse_int(data['association_distribution_id'], 'association_distribution_id'),
                recipient_association_id=g.current_user.id
            ).with_for_update().first()
            if not parent:
                return jsonify({'error': 'Invalid association distribution'}), 400
            if parent.status == 'cancelled':
                return jsonify({'error': 'Cannot distribute from a cancelled distribution'}), 400

            planned = []
            for entry in entries:
                quantity = parse_int(entry.get('quantity_distributed'), 'Quantity')
                if quantity <= 0:
                    return jsonify({'error': 'Each quantity must be greater than 0'}), 400
                farmer = find_farmer(entry.get('farmer_id'))
                if not farmer or not farmer.is_verified:
                    return jsonify({'error': f"Invalid farmer selected: {entry.get('farmer_id')}"}), 400
                planned.append((farmer, quantity, entry.get('remarks')))

            requested = sum(q for _, q, _ in planned)
            remaining = parent.remaining_quantity
            if requested > remaining:
                return jsonify({
                    'error': f"Cannot distribute {requested} seedlings. Only {remaining} remaining."
                }), 400

            rows = []
            for farmer, quantity, remarks in planned:
                row = FarmerSeedlingDistribution(
                    variety=parent.variety,
                    quantity_distributed=quantity,
                    date_distributed=date.today(),
                    recipient_farmer_id=farmer.id,
                    remarks=remarks,
                    status='distributed_to_farmer',
                    distributed_by_association=g.current_user.id
                )
                parent.farmer_distributions.append(row)
                rows.append(row)
                broadcast_notification(
                    'Seedlings Received',
                    f"You received {quantity} {parent.variety} seedlings from {g.current_user.association_name}.",
                    target_user_id=farmer.id
                )

            refresh_association_status(parent)
            db.session.commit()
            log_activity('DISTRIBUTE TO FARMERS', 'AssociationSeedlingDistribution', parent.id,
                         f"{requested} seedlings to {len(rows)} farmer(s)")
            return jsonify({
                'message': f"Distributed {requested} seedlings to {len(rows)} farmer(s)",
                'distributions': [r.to_dict() for r in rows],
                'remaining_quantity': parent.remaining_quantity,
                'status': parent.status
            }), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Distribute to farmers error')

    @app.route('/api/association-seedlings/association/farmer-distributions', methods=['GET'])
    @role_required('association_officer')
    def association_farmer_distributions():
        rows = FarmerSeedlingDistribution.query.filter_by(distributed_by_association=g.current_user.id) \
            .order_by(FarmerSeedlingDistribution.date_distributed.desc()).all()
        return jsonify({'distributions': [r.to_dict(include_relations=True) for r in rows]}), 200

    @app.route('/api/association-seedlings/association/farmer-distributions/<int:id>', methods=['DELETE'])
    @role_required('association_officer')
    def delete_farmer_distribution(id):
        try:
            row = db.session.get(FarmerSeedlingDistribution, id)
            if not row:
                return jsonify({'error': 'Distribution not found'}), 404
            if row.distributed_by_association != g.current_user.id:
                return jsonify({'error': 'You can only delete distributions made by your association'}), 403

            parent = row.association_distribution
            parent.farmer_distributions.remove(row)
            refresh_association_status(parent)
            db.session.commit()
            log_activity('DELETE FARMER DISTRIBUTION', 'FarmerSeedlingDistribution', id)
            return jsonify({
                'message': 'Distribution deleted',
                'remaining_quantity': parent.remaining_quantity,
                'status': parent.status
            }), 200
        except Exception as e:
            return server_error(e, 'Delete farmer distribution error')

    @app.route('/api/association-seedlings/association/received/<int:id>', methods=['PUT'])
    @role_required('association_officer')
    def update_received_distribution(id):
        try:
            distribution = AssociationSeedlingDistribution.query.filter_by(
                id=id, recipient_association_id=g.current_user.id
            ).first()
            if not distribution:
                return jsonify({'error': 'Distribution not found'}), 404
            data = get_payload()

            if 'status' in data:
                if data['status'] not in ASSOCIATION_DISTRIBUTION_STATUSES:
                    return jsonify({'error': 'Invalid status'}), 400
                distribution.status = data['status']
            if 'remarks' in data:
                distribution.remarks = data['remarks']

            db.session.commit()
            log_activity('UPDATE RECEIVED DISTRIBUTION', 'AssociationSeedlingDistribution', id)
            return jsonify({
                'message': 'Distribution updated',
                'distribution': distribution.to_dict(include_relations=True)
            }), 200
        except Exception as e:
            return server_error(e, 'Update received distribution error')

    @app.route('/api/association-seedlings/association/received/<int:id>', methods=['DELETE'])
    @role_required('association_officer')
    def delete_received_distribution(id):
        try:
            distribution = AssociationSeedlingDistribution.query.filter_by(
                id=id, recipient_association_id=g.current_user.id
            ).first()
            if not distribution:
                return jsonify({'error': 'Distribution not found'}), 404
            if distribution.farmer_distributions:
                return jsonify({
                    'error': 'Cannot delete a distribution that has already been distributed to farmers'
                }), 400

            db.session.delete(distribution)
            db.session.commit()
            log_activity('DELETE RECEIVED DISTRIBUTION', 'AssociationSeedlingDistribution', id)
            return jsonify({'message': 'Distribution deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete received distribution error')

    @app.route('/api/association-seedlings/association/stats', methods=['GET'])
    @role_required('association_officer')
    def association_distribution_stats():
        return jsonify(scoped_distribution_stats(g.current_user)), 200

    @app.route('/api/association-seedlings/farmer/received', methods=['GET'])
    @role_required('farmer')
    def farmer_received_distributions():
        rows = FarmerSeedlingDistribution.query.filter_by(recipient_farmer_id=g.current_user.id) \
            .order_by(FarmerSeedlingDistribution.date_distributed.desc()).all()
        return jsonify({'distributions': [r.to_dict(include_relations=True) for r in rows]}), 200

    @app.route('/api/association-seedlings/farmer/<id>/mark-planted', methods=['PUT'])
    @role_required('farmer')
    def mark_distribution_planted(id):
        try:
            distribution_id = int(id)
        except ValueError:
            return jsonify({'error': 'Invalid distribution ID'}), 400
        try:
            row = db.session.get(FarmerSeedlingDistribution, distribution_id)
            if not row:
                return jsonify({'error': 'Distribution not found'}), 404
            if row.recipient_farmer_id != g.current_user.id:
                return jsonify({'error': 'You can only update seedlings distributed to you'}), 403

            apply_planting(row, get_payload())
            db.session.commit()
            log_activity('MARK DISTRIBUTION PLANTED', 'FarmerSeedlingDistribution', row.id)
            return jsonify({'message': 'Seedlings marked as planted', 'distribution': row.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Mark planted error')

    @app.route('/api/association-seedlings/cusafa/all-distributions', methods=['GET'])
    @role_required(*CUSAFA_ROLES)
    def cusafa_all_distributions():
        assoc = AssociationSeedlingDistribution.query \
            .order_by(AssociationSeedlingDistribution.date_distributed.desc()).all()
        farmer = FarmerSeedlingDistribution.query \
            .order_by(FarmerSeedlingDistribution.date_distributed.desc()).all()
        return jsonify({
            'association_distributions': [d.to_dict(include_relations=True) for d in assoc],
            'farmer_distributions': [d.to_dict(include_relations=True) for d in farmer],
            'summary': {
                'total_association_distributions': len(assoc),
                'total_farmer_distributions': len(farmer),
                'total_seedlings_to_associations': sum(d.quantity_distributed for d in assoc),
                'total_seedlings_to_farmers': sum(d.quantity_distributed for d in farmer)
            }
        }), 200

    @app.route('/api/association-seedlings/cusafa/stats', methods=['GET'])
    @role_required(*CUSAFA_ROLES)
    def cusafa_distribution_stats():
        return jsonify(scoped_distribution_stats(g.current_user)), 200

    # ============ Field Monitoring Routes ============

    MONITORING_FIELDS = [
        'date_of_visit', 'monitored_by', 'monitored_by_role', 'farmer_id', 'farm_location',
        'farm_condition', 'growth_stage', 'issues_observed', 'other_issues', 'actions_taken',
        'recommendations', 'next_monitoring_date', 'status', 'weather_condition',
        'estimated_yield', 'remarks', 'photo_urls'
    ]

    def scoped_monitoring_records():
        query = MonitoringRecord.query
        if not g.current_user.is_super_admin:
            query = query.filter_by(created_by=g.current_user.id)
        return [r.to_dict() for r in query.all()]

    def apply_monitoring_fields(record, data, farmer):
        record.date_of_visit = parse_date(data['date_of_visit'], 'date_of_visit')
        record.next_monitoring_date = parse_date(data.get('next_monitoring_date'), 'next_monitoring_date')
        record.monitored_by = data['monitored_by']
        record.monitored_by_role = data.get('monitored_by_role') or 'MAO Officer'
        record.farmer_id = farmer.id
        record.farmer_name = farmer.full_name
        record.association_name = farmer.association_name
        record.farm_location = data.get('farm_location') or ', '.join(
            p for p in (farmer.barangay, farmer.municipality) if p
        ) or None
        record.farm_condition = data['farm_condition']
        record.growth_stage = data['growth_stage']
        record.issues_observed = as_list(data.get('issues_observed'))
        record.other_issues = data.get('other_issues')
        record.actions_taken = data['actions_taken'].strip()
        record.recommendations = data['recommendations'].strip()
        record.status = data.get('status') or 'Ongoing'
        record.weather_condition = data.get('weather_condition')
        record.estimated_yield = parse_float(data.get('estimated_yield'), 'Estimated yield')
        record.remarks = data.get('remarks')
        record.photo_urls = as_list(data.get('photo_urls'))

    @app.route('/api/mao/monitoring', methods=['GET'])
    @role_required('officer')
    def list_monitoring():
        try:
            records = filter_records(scoped_monitoring_records(), request.args)
            view = request.args.get('view')
            if view == 'upcoming':
                records = upcoming_monitoring(records)
            elif view == 'overdue':
                records = overdue_monitoring(records)
            elif view == 'completed':
                records = sort_by_date([r for r in records if r['status'] == 'Completed'])
            else:
                records = sort_by_date(records)
            return jsonify({'records': records, 'count': len(records)}), 200
        except ValueError:
            return jsonify({'error': 'Invalid date filter. Use YYYY-MM-DD format'}), 400

    @app.route('/api/mao/monitoring/stats', methods=['GET'])
    @role_required('officer')
    def monitoring_stats():
        return jsonify(calculate_stats(scoped_monitoring_records())), 200

    @app.route('/api/mao/monitoring/upcoming', methods=['GET'])
    @role_required('officer')
    def monitoring_upcoming():
        records = upcoming_monitoring(scoped_monitoring_records())
        return jsonify({'records': records, 'count': len(records)}), 200

    @app.route('/api/mao/monitoring/overdue', methods=['GET'])
    @role_required('officer')
    def monitoring_overdue():
        records = overdue_monitoring(scoped_monitoring_records())
        return jsonify({'records': records, 'count': len(records)}), 200

    @app.route('/api/mao/monitoring/<monitoring_id>', methods=['GET'])
    @role_required('officer')
    def get_monitoring(monitoring_id):
        record = MonitoringRecord.query.filter_by(monitoring_id=monitoring_id).first()
        if not record:
            return jsonify({'error': 'Monitoring record not found'}), 404
        return jsonify(record.to_dict()), 200

    @app.route('/api/mao/monitoring', methods=['POST'])
    @role_required('officer')
    def create_monitoring():
        try:
            data = get_payload()
            data.setdefault('monitored_by', g.current_user.full_name)
            errors = validate_monitoring_form(data)
            if errors:
                return jsonify({'error': 'Validation failed', 'details': errors}), 400

            monitoring_id = data.get('monitoring_id') or generate_monitoring_id()
            if MonitoringRecord.query.filter_by(monitoring_id=monitoring_id).first():
                return jsonify({'error': 'Monitoring ID already exists'}), 400

            farmer = find_farmer(data.get('farmer_id'))
            if not farmer:
                return jsonify({'error': 'Farmer not found'}), 400

            record = MonitoringRecord(monitoring_id=monitoring_id, created_by=g.current_user.id)
            apply_monitoring_fields(record, data, farmer)
            db.session.add(record)
            db.session.commit()
            log_activity('CREATE MONITORING', 'MonitoringRecord', monitoring_id,
                         f"{record.farm_condition} visit for {farmer.full_name}")
            return jsonify({'message': 'Monitoring record created', 'record': record.to_dict()}), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Create monitoring error')

    @app.route('/api/mao/monitoring/<monitoring_id>', methods=['PUT'])
    @role_required('officer')
    def update_monitoring(monitoring_id):
        try:
            record = MonitoringRecord.query.filter_by(monitoring_id=monitoring_id).first()
            if not record:
                return jsonify({'error': 'Monitoring record not found'}), 404
            if record.status == 'Completed':
                return jsonify({'error': 'Completed monitoring records cannot be edited'}), 400

            data = get_payload()
            merged = record.to_dict()
            merged.update({k: data[k] for k in MONITORING_FIELDS if k in data})
            errors = validate_monitoring_form(merged)
            if errors:
                return jsonify({'error': 'Validation failed', 'details': errors}), 400

            farmer = find_farmer(merged['farmer_id'])
            if not farmer:
                return jsonify({'error': 'Farmer not found'}), 400

            apply_monitoring_fields(record, merged, farmer)
            record.updated_by = g.current_user.id
            db.session.commit()
            log_activity('UPDATE MONITORING', 'MonitoringRecord', monitoring_id)
            return jsonify({'message': 'Monitoring record updated', 'record': record.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update monitoring error')

    @app.route('/api/mao/monitoring/<monitoring_id>', methods=['DELETE'])
    @role_required('officer')
    def delete_monitoring(monitoring_id):
        try:
            record = MonitoringRecord.query.filter_by(monitoring_id=monitoring_id).first()
            if not record:
                return jsonify({'error': 'Monitoring record not found'}), 404
            db.session.delete(record)
            db.session.commit()
            log_activity('DELETE MONITORING', 'MonitoringRecord', monitoring_id)
            return jsonify({'message': 'Monitoring record deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete monitoring error')

    @app.route('/api/farmers/monitoring', methods=['GET'])
    @role_required('farmer')
    def farmer_monitoring():
        records = sort_by_date([
            r.to_dict() for r in MonitoringRecord.query.filter_by(farmer_id=g.current_user.id).all()
        ])
        latest = latest_record_per_farmer(records)
        latest = latest[0] if latest else None
        next_visit = latest['next_monitoring_date'] if latest else None
        return jsonify({
            'records': records,
            'count': len(records),
            'latest': latest,
            'next_monitoring_date': next_visit,
            'is_overdue': is_overdue(next_visit)
        }), 200

    # ============ Harvest Routes ============

    HARVEST_TEXT_FIELDS = [
        'farm_name', 'farm_code', 'farm_coordinates', 'landmark', 'abaca_variety',
        'planting_material_source', 'harvest_method', 'fiber_grade', 'fiber_color',
        'moisture_status', 'pests_description', 'diseases_description', 'remarks'
    ]
    HARVEST_INT_FIELDS = ['stalks_harvested', 'tuxies_collected', 'bales_produced', 'number_of_workers']
    HARVEST_DECIMAL_FIELDS = [
        'area_hectares', 'wet_weight_kg', 'dry_fiber_output_kg', 'yield_per_hectare_kg',
        'fiber_length_cm', 'weight_per_bale_kg', 'labor_hours', 'total_harvesting_cost'
    ]

    def assign_harvest_fields(harvest, data):
        for field in HARVEST_TEXT_FIELDS:
            if field in data:
                setattr(harvest, field, data[field])
        for field in HARVEST_INT_FIELDS:
            if field in data:
                value = data[field]
                setattr(harvest, field, parse_int(value, field) if value not in (None, '') else None)
        for field in HARVEST_DECIMAL_FIELDS:
            if field in data:
                setattr(harvest, field, parse_float(data[field], field))
        for field in ['pests_observed', 'diseases_observed']:
            if field in data:
                setattr(harvest, field, as_bool(data[field]))
        if 'harvest_date' in data:
            harvest.harvest_date = parse_date(data['harvest_date'], 'harvest_date')
        if 'planting_date' in data:
            harvest.planting_date = parse_date(data['planting_date'], 'planting_date')
        if 'photo_urls' in data:
            harvest.photo_urls = as_list(data['photo_urls'])

        if harvest.harvest_date is None:
            raise ValueError('Harvest date is required')
        if harvest.dry_fiber_output_kg is None or float(harvest.dry_fiber_output_kg) < 0:
            raise ValueError('Dry fiber output (kg) is required and cannot be negative')
        recompute = harvest.yield_per_hectare_kg is None or 'dry_fiber_output_kg' in data or 'area_hectares' in data
        if recompute and 'yield_per_hectare_kg' not in data and harvest.area_hectares and float(harvest.area_hectares) > 0:
            harvest.yield_per_hectare_kg = round(float(harvest.dry_fiber_output_kg) / float(harvest.area_hectares), 2)

    def own_harvest(id):
        return Harvest.query.filter_by(id=id, farmer_id=g.current_user.id).first()

    @app.route('/api/harvests/farmer/harvests', methods=['POST'])
    @role_required('farmer')
    def create_harvest():
        try:
            data = get_payload()
            farmer = g.current_user
            harvest = Harvest(
                farmer_id=farmer.id,
                farmer_name=farmer.full_name,
                farmer_contact=data.get('farmer_contact') or farmer.contact_number,
                cooperative_name=data.get('cooperative_name') or farmer.association_name,
                municipality=data.get('municipality') or farmer.municipality,
                barangay=data.get('barangay') or farmer.barangay,
                area_hectares=farmer.farm_area_hectares,
                status='Pending Verification'
            )
            assign_harvest_fields(harvest, data)
            db.session.add(harvest)
            db.session.commit()
            log_activity('SUBMIT HARVEST', 'Harvest', harvest.id,
                         f"{harvest.dry_fiber_output_kg} kg dry fiber")
            return jsonify({'message': 'Harvest submitted for verification', 'harvest': harvest.to_dict()}), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Create harvest error')

    @app.route('/api/harvests/farmer/harvests', methods=['GET'])
    @role_required('farmer')
    def my_harvests():
        query = Harvest.query.filter_by(farmer_id=g.current_user.id)
        status = request.args.get('status')
        if status and status != 'all':
            query = query.filter_by(status=status)
        harvests = query.order_by(Harvest.harvest_date.desc(), Harvest.id.desc()).all()
        return jsonify({'harvests': [h.to_dict() for h in harvests]}), 200

    @app.route('/api/harvests/farmer/harvests/statistics', methods=['GET'])
    @role_required('farmer')
    def my_harvest_statistics():
        rows = [h.to_dict() for h in Harvest.query.filter_by(farmer_id=g.current_user.id).all()]
        return jsonify({'statistics': harvest_stats(rows)}), 200

    @app.route('/api/harvests/farmer/harvests/<int:id>', methods=['GET'])
    @role_required('farmer')
    def get_my_harvest(id):
        harvest = own_harvest(id)
        if not harvest:
            return jsonify({'error': 'Harvest not found'}), 404
        return jsonify({'harvest': harvest.to_dict()}), 200

    @app.route('/api/harvests/farmer/harvests/<int:id>', methods=['PUT'])
    @role_required('farmer')
    def update_my_harvest(id):
        try:
            harvest = own_harvest(id)
            if not harvest:
                return jsonify({'error': 'Harvest not found'}), 404
            if harvest.status != 'Pending Verification':
                return jsonify({'error': 'Only harvests pending verification can be edited'}), 403

            data = get_payload()
            for field in ['farmer_contact', 'cooperative_name', 'municipality', 'barangay']:
                if field in data:
                    setattr(harvest, field, data[field])
            assign_harvest_fields(harvest, data)
            db.session.commit()
            log_activity('UPDATE HARVEST', 'Harvest', harvest.id)
            return jsonify({'message': 'Harvest updated', 'harvest': harvest.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update harvest error')

    @app.route('/api/harvests/farmer/harvests/<int:id>', methods=['DELETE'])
    @role_required('farmer')
    def delete_my_harvest(id):
        try:
            harvest = own_harvest(id)
            if not harvest:
                return jsonify({'error': 'Harvest not found'}), 404
            if harvest.status in ('Verified', 'In Inventory'):
                return jsonify({'error': 'Verified harvests cannot be deleted'}), 403
            db.session.delete(harvest)
            db.session.commit()
            log_activity('DELETE HARVEST', 'Harvest', id)
            return jsonify({'message': 'Harvest deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete harvest error')

    @app.route('/api/harvests/mao/harvests', methods=['GET'])
    @role_required('officer')
    def mao_harvests():
        try:
            query = Harvest.query
            status = request.args.get('status')
            municipality = request.args.get('municipality')
            farmer_id = request.args.get('farmer_id')
            date_from = parse_date(request.args.get('date_from'), 'date_from')
            date_to = parse_date(request.args.get('date_to'), 'date_to')

            if status and status != 'all':
                query = query.filter(Harvest.status == status)
            if municipality:
                query = query.filter(Harvest.municipality.ilike(f"%{municipality}%"))
            if farmer_id:
                query = query.filter(Harvest.farmer_id == parse_int(farmer_id, 'farmer_id'))
            if date_from:
                query = query.filter(Harvest.harvest_date >= date_from)
            if date_to:
                query = query.filter(Harvest.harvest_date <= date_to)

            harvests = query.order_by(Harvest.harvest_date.desc(), Harvest.id.desc()).all()
            return jsonify({'harvests': [h.to_dict() for h in harvests], 'count': len(harvests)}), 200
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    @app.route('/api/harvests/admin/harvests/all', methods=['GET'])
    @role_required('officer')
    def all_harvests():
        if not g.current_user.is_super_admin:
            return jsonify({'error': 'Super admin access required'}), 403
        harvests = Harvest.query.order_by(Harvest.created_at.desc()).all()
        return jsonify({'harvests': [h.to_dict() for h in harvests], 'count': len(harvests)}), 200

    @app.route('/api/harvests/mao/harvests/statistics', methods=['GET'])
    @role_required('officer')
    def mao_harvest_statistics():
        rows = [h.to_dict() for h in Harvest.query.all()]
        return jsonify({'statistics': harvest_stats(rows)}), 200

    @app.route('/api/harvests/mao/harvests/farmers/summary', methods=['GET'])
    @role_required('officer')
    def mao_farmer_harvest_summary():
        rows = [h.to_dict() for h in Harvest.query.all()]
        return jsonify({'summary': farmer_harvest_summary(rows)}), 200

    def review_harvest(id, new_status, notes):
        harvest = db.session.get(Harvest, id)
        if not harvest:
            return jsonify({'error': 'Harvest not found'}), 404
        if harvest.status != 'Pending Verification':
            return jsonify({'error': f"Harvest is already {harvest.status}"}), 400

        harvest.status = new_status
        harvest.verified_by = g.current_user.id
        harvest.verified_at = datetime.utcnow()
        harvest.verification_notes = notes
        message = f"Your harvest from {harvest.harvest_date.isoformat()} was {new_status.lower()}."
        if notes:
            message += f" Notes: {notes}"
        broadcast_notification(f"Harvest {new_status}", message, target_user_id=harvest.farmer_id)
        db.session.commit()
        log_activity(f"HARVEST {new_status.upper()}", 'Harvest', harvest.id, notes)
        return jsonify({'message': f'Harvest {new_status.lower()}', 'harvest': harvest.to_dict()}), 200

    @app.route('/api/harvests/mao/harvests/<int:id>/verify', methods=['POST'])
    @role_required('officer')
    def verify_harvest(id):
        try:
            return review_harvest(id, 'Verified', get_payload().get('verification_notes'))
        except Exception as e:
            return server_error(e, 'Verify harvest error')

    @app.route('/api/harvests/mao/harvests/<int:id>/reject', methods=['POST'])
    @role_required('officer')
    def reject_harvest(id):
        notes = (get_payload().get('verification_notes') or '').strip()
        if not notes:
            return jsonify({'error': 'Verification notes are required when rejecting a harvest'}), 400
        try:
            return review_harvest(id, 'Rejected', notes)
        except Exception as e:
            return server_error(e, 'Reject harvest error')

    # ============ CUSAFA Inventory Routes ============

    @app.route('/api/cusafa-inventory/add/<int:id>', methods=['POST'])
    @role_required('farmer', *CUSAFA_ROLES)
    def add_to_inventory(id):
        try:
            harvest = db.session.get(Harvest, id)
            if not harvest:
                return jsonify({'error': 'Harvest not found'}), 404
            if g.current_user.role == 'farmer' and harvest.farmer_id != g.current_user.id:
                return jsonify({'error': 'You can only add your own harvests to inventory'}), 403
            if harvest.status == 'In Inventory':
                return jsonify({'error': 'Harvest already in inventory'}), 400
            if harvest.status != 'Verified':
                return jsonify({'error': 'Only verified harvests can be added to inventory'}), 400

            harvest.status = 'In Inventory'
            notes = get_payload().get('notes')
            if notes:
                harvest.remarks = notes
            db.session.commit()
            log_activity('ADD TO INVENTORY', 'Harvest', harvest.id,
                         f"{harvest.dry_fiber_output_kg} kg {harvest.abaca_variety or 'abaca'}")
            return jsonify({
                'message': 'Harvest added to CUSAFA inventory successfully',
                'inventory': harvest.to_dict()
            }), 201
        except Exception as e:
            return server_error(e, 'Add to inventory error')

    @app.route('/api/cusafa-inventory', methods=['GET'])
    @app.route('/api/cusafa-inventory/', methods=['GET'])
    @role_required()
    def cusafa_inventory():
        try:
            query = Harvest.query.filter(Harvest.status == 'In Inventory')
            variety = request.args.get('variety')
            farmer_id = request.args.get('farmer_id')
            date_from = parse_date(request.args.get('date_from'), 'date_from')
            date_to = parse_date(request.args.get('date_to'), 'date_to')

            if variety:
                query = query.filter(Harvest.abaca_variety == variety)
            if farmer_id:
                query = query.filter(Harvest.farmer_id == parse_int(farmer_id, 'farmer_id'))
            if date_from:
                query = query.filter(Harvest.harvest_date >= date_from)
            if date_to:
                query = query.filter(Harvest.harvest_date <= date_to)

            harvests = query.order_by(Harvest.created_at.desc(), Harvest.id.desc()).all()
            return jsonify({
                'inventory': [h.to_dict(include_relations=True) for h in harvests],
                'count': len(harvests)
            }), 200
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    @app.route('/api/cusafa-inventory/stats', methods=['GET'])
    @role_required()
    def cusafa_inventory_stats():
        rows = [h.to_dict() for h in Harvest.query.filter(Harvest.status == 'In Inventory').all()]
        return jsonify({'stats': inventory_stats(rows)}), 200

    # ============ Fiber Delivery Routes ============

    def is_delivery_participant(user, delivery):
        return user.id in (delivery.farmer_id, delivery.buyer_id)

    def apply_delivery_status(delivery, data):
        """Move a delivery to a new status. Returns an error message or None."""
        status = data.get('status')
        if status not in DELIVERY_STATUSES:
            return f"Status must be one of: {', '.join(DELIVERY_STATUSES)}"
        if delivery.status in DELIVERY_TERMINAL_STATUSES:
            return f"Delivery is already {delivery.status.lower()}"

        delivery.status = status
        stamp = DELIVERY_STATUS_TIMESTAMPS.get(status)
        if stamp:
            setattr(delivery, stamp, datetime.utcnow())
        if status == 'Cancelled':
            delivery.cancellation_reason = data.get('cancellation_reason') or 'Cancelled by user'

        other = delivery.buyer_id if g.current_user.id == delivery.farmer_id else delivery.farmer_id
        broadcast_notification(
            'Delivery Update',
            f"Delivery #{delivery.id} is now {status}.",
            target_user_id=other
        )
        return None

    @app.route('/api/fiber-deliveries/create', methods=['POST'])
    @role_required('farmer')
    def create_delivery():
        try:
            data = get_payload()
            farmer = g.current_user

            buyer = None
            if data.get('buyer_id'):
                buyer = User.query.filter_by(
                    id=parse_int(data['buyer_id'], 'Buyer ID'), role='buyer', is_verified=True
                ).first()
            if not buyer:
                return jsonify({'error': 'Invalid buyer selected'}), 400

            delivery_date = parse_date(data.get('delivery_date'), 'delivery_date')
            if not delivery_date:
                return jsonify({'error': 'Delivery date is required'}), 400

            quantity = parse_float(data.get('quantity_kg'), 'Quantity')
            price = parse_float(data.get('price_per_kg'), 'Price per kg')
            if quantity is None or quantity <= 0:
                return jsonify({'error': 'Quantity must be greater than 0'}), 400
            if price is None or price < 0:
                return jsonify({'error': 'Price per kg cannot be negative'}), 400

            harvest = None
            if data.get('harvest_id'):
                harvest = own_harvest(parse_int(data['harvest_id'], 'Harvest ID'))
                if not harvest:
                    return jsonify({'error': 'Invalid harvest selected'}), 400

            delivery = FiberDelivery(
                farmer_id=farmer.id,
                buyer_id=buyer.id,
                harvest_id=harvest.id if harvest else None,
                delivery_date=delivery_date,
                delivery_time=data.get('delivery_time'),
                variety=data.get('variety') or (harvest.abaca_variety if harvest else None),
                quantity_kg=quantity,
                grade=data.get('grade') or (harvest.fiber_grade if harvest else None),
                municipality=data.get('municipality') or farmer.municipality,
                barangay=data.get('barangay') or farmer.barangay,
                price_per_kg=price,
                total_amount=round(quantity * price, 2),
                pickup_location=data.get('pickup_location'),
                delivery_location=data.get('delivery_location') or buyer.business_address,
                delivery_method=data.get('delivery_method'),
                farmer_contact=data.get('farmer_contact') or farmer.contact_number,
                buyer_contact=data.get('buyer_contact') or buyer.contact_number,
                notes=data.get('notes'),
                status='In Transit',
                payment_status='Pending'
            )
            db.session.add(delivery)
            broadcast_notification(
                'Incoming Fiber Delivery',
                f"{farmer.full_name} is delivering {quantity:g} kg of abaca fiber on {delivery_date.isoformat()}.",
                target_user_id=buyer.id
            )
            db.session.commit()
            log_activity('CREATE DELIVERY', 'FiberDelivery', delivery.id, f"{quantity:g} kg to buyer {buyer.id}")
            return jsonify({
                'message': 'Delivery created',
                'delivery': delivery.to_dict(include_relations=True)
            }), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Create delivery error')

    def list_deliveries(query):
        status = request.args.get('status')
        if status and status != 'all':
            query = query.filter(FiberDelivery.status == status)
        deliveries = query.order_by(FiberDelivery.created_at.desc(), FiberDelivery.id.desc()).all()
        return jsonify({'deliveries': [d.to_dict(include_relations=True) for d in deliveries]}), 200

    @app.route('/api/fiber-deliveries/farmer/my-deliveries', methods=['GET'])
    @role_required('farmer')
    def farmer_deliveries():
        return list_deliveries(FiberDelivery.query.filter_by(farmer_id=g.current_user.id))

    @app.route('/api/fiber-deliveries/buyer/incoming-deliveries', methods=['GET'])
    @role_required('buyer')
    def buyer_deliveries():
        return list_deliveries(FiberDelivery.query.filter_by(buyer_id=g.current_user.id))

    @app.route('/api/fiber-deliveries/cusafa/all-deliveries', methods=['GET'])
    @role_required(*CUSAFA_ROLES)
    def cusafa_deliveries():
        return list_deliveries(FiberDelivery.query)

    @app.route('/api/fiber-deliveries/stats', methods=['GET'])
    @role_required()
    def get_delivery_stats():
        user = g.current_user
        query = FiberDelivery.query
        if user.role == 'farmer':
            query = query.filter_by(farmer_id=user.id)
        elif user.role == 'buyer':
            query = query.filter_by(buyer_id=user.id)
        return jsonify({'stats': delivery_stats([d.to_dict() for d in query.all()])}), 200

    @app.route('/api/fiber-deliveries/<int:id>', methods=['GET'])
    @role_required()
    def get_delivery(id):
        delivery = db.session.get(FiberDelivery, id)
        if not delivery:
            return jsonify({'error': 'Delivery not found'}), 404
        if not (is_delivery_participant(g.current_user, delivery) or is_cusafa(g.current_user)):
            return jsonify({'error': 'You do not have access to this delivery'}), 403
        return jsonify({'delivery': delivery.to_dict(include_relations=True)}), 200

    @app.route('/api/fiber-deliveries/<int:id>/status', methods=['PUT'])
    @role_required()
    def update_delivery_status(id):
        try:
            delivery = db.session.get(FiberDelivery, id)
            if not delivery:
                return jsonify({'error': 'Delivery not found'}), 404
            if not (is_delivery_participant(g.current_user, delivery) or is_cusafa(g.current_user)):
                return jsonify({'error': 'You do not have access to this delivery'}), 403

            error = apply_delivery_status(delivery, get_payload())
            if error:
                db.session.rollback()
                return jsonify({'error': error}), 400
            db.session.commit()
            log_activity('UPDATE DELIVERY STATUS', 'FiberDelivery', id, delivery.status)
            return jsonify({'message': 'Delivery status updated', 'delivery': delivery.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'Update delivery status error')

    @app.route('/api/fiber-deliveries/cusafa/<int:id>/status', methods=['PUT'])
    @role_required(*CUSAFA_ROLES)
    def cusafa_update_delivery_status(id):
        try:
            delivery = db.session.get(FiberDelivery, id)
            if not delivery:
                return jsonify({'error': 'Delivery not found'}), 404

            data = get_payload()
            error = apply_delivery_status(delivery, data)
            if error:
                db.session.rollback()
                return jsonify({'error': error}), 400
            if data.get('delivery_proof_image'):
                delivery.delivery_proof_image = data['delivery_proof_image']
            db.session.commit()
            log_activity('UPDATE DELIVERY STATUS', 'FiberDelivery', id, delivery.status)
            return jsonify({'message': 'Delivery status updated', 'delivery': delivery.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'CUSAFA delivery status error')

    @app.route('/api/fiber-deliveries/<int:id>/payment', methods=['PUT'])
    @role_required()
    def update_delivery_payment(id):
        try:
            delivery = db.session.get(FiberDelivery, id)
            if not delivery:
                return jsonify({'error': 'Delivery not found'}), 404
            if g.current_user.id != delivery.buyer_id and not is_cusafa(g.current_user):
                return jsonify({'error': 'Only the buyer can update payment'}), 403

            data = get_payload()
            payment_status = data.get('payment_status')
            if payment_status not in PAYMENT_STATUSES:
                return jsonify({'error': f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}"}), 400

            delivery.payment_status = payment_status
            if 'payment_method' in data:
                delivery.payment_method = data['payment_method']
            payment_date = parse_date(data.get('payment_date'), 'payment_date')
            if payment_date:
                delivery.payment_date = payment_date
            elif payment_status == 'Paid' and not delivery.payment_date:
                delivery.payment_date = date.today()
            if data.get('receipt_image'):
                delivery.receipt_image = data['receipt_image']

            if payment_status == 'Paid':
                broadcast_notification(
                    'Payment Received',
                    f"Payment of {float(delivery.total_amount):,.2f} for delivery #{delivery.id} was marked as paid.",
                    target_user_id=delivery.farmer_id
                )
            db.session.commit()
            log_activity('UPDATE DELIVERY PAYMENT', 'FiberDelivery', id, payment_status)
            return jsonify({'message': 'Payment updated', 'delivery': delivery.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update payment error')

    @app.route('/api/fiber-deliveries/<int:id>/proof', methods=['PUT'])
    @role_required()
    def upload_delivery_proof(id):
        try:
            delivery = db.session.get(FiberDelivery, id)
            if not delivery:
                return jsonify({'error': 'Delivery not found'}), 404
            if not is_delivery_participant(g.current_user, delivery):
                return jsonify({'error': 'You do not have access to this delivery'}), 403

            proof = get_payload().get('delivery_proof_image')
            if not proof:
                return jsonify({'error': 'delivery_proof_image is required'}), 400
            delivery.delivery_proof_image = proof
            db.session.commit()
            log_activity('UPLOAD DELIVERY PROOF', 'FiberDelivery', id)
            return jsonify({'message': 'Delivery proof saved', 'delivery': delivery.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'Delivery proof error')

    @app.route('/api/fiber-deliveries/<int:id>/cancel', methods=['DELETE'])
    @role_required('farmer')
    def cancel_delivery(id):
        try:
            delivery = FiberDelivery.query.filter_by(id=id, farmer_id=g.current_user.id).first()
            if not delivery:
                return jsonify({'error': 'Delivery not found'}), 404
            if delivery.status in DELIVERY_TERMINAL_STATUSES:
                return jsonify({'error': f"Cannot cancel a delivery that is already {delivery.status.lower()}"}), 400

            delivery.status = 'Cancelled'
            delivery.cancelled_at = datetime.utcnow()
            delivery.cancellation_reason = get_payload().get('reason') or 'Cancelled by user'
            broadcast_notification(
                'Delivery Cancelled',
                f"Delivery #{delivery.id} was cancelled by the farmer. Reason: {delivery.cancellation_reason}",
                target_user_id=delivery.buyer_id
            )
            db.session.commit()
            log_activity('CANCEL DELIVERY', 'FiberDelivery', id, delivery.cancellation_reason)
            return jsonify({'message': 'Delivery cancelled', 'delivery': delivery.to_dict()}), 200
        except Exception as e:
            return server_error(e, 'Cancel delivery error')

    # ============ Buyer Listing Routes ============

    LISTING_FIELDS = [
        'company_name', 'contact_person', 'phone', 'email', 'location', 'municipality',
        'barangay', 'payment_terms', 'requirements', 'availability'
    ]

    def apply_listing_fields(listing, data):
        for field in LISTING_FIELDS:
            if field in data:
                setattr(listing, field, data[field])
        for grade in LISTING_CLASSES:
            if f'{grade}_enabled' in data:
                setattr(listing, f'{grade}_enabled', as_bool(data[f'{grade}_enabled']))
            if f'{grade}_price' in data:
                setattr(listing, f'{grade}_price', data[f'{grade}_price'])
            if f'{grade}_image' in data:
                setattr(listing, f'{grade}_image', data[f'{grade}_image'])

        if not any(getattr(listing, f'{grade}_enabled') for grade in LISTING_CLASSES):
            raise ValueError('At least one fiber class must be enabled')
        for grade in LISTING_CLASSES:
            label = grade.replace('_', ' ').title()
            if getattr(listing, f'{grade}_enabled'):
                price = parse_float(getattr(listing, f'{grade}_price'), f'{label} price')
                if price is None or price < 0:
                    raise ValueError(f'{label} price is required and cannot be negative')
                setattr(listing, f'{grade}_price', price)
            else:
                setattr(listing, f'{grade}_price', None)
                setattr(listing, f'{grade}_image', None)

    @app.route('/api/buyer-listings/create', methods=['POST'])
    @role_required('buyer')
    def create_listing():
        try:
            buyer = g.current_user
            data = get_payload()
            listing = BuyerListing(
                buyer_id=buyer.id,
                company_name=buyer.business_name,
                contact_person=buyer.full_name,
                phone=buyer.contact_number,
                email=buyer.email,
                location=buyer.business_address,
                municipality=buyer.municipality,
                barangay=buyer.barangay,
                availability='Available',
                valid_until=date.today() + timedelta(days=3652)
            )
            for grade in LISTING_CLASSES:
                setattr(listing, f'{grade}_enabled', False)
            apply_listing_fields(listing, data)

            db.session.add(listing)
            db.session.commit()
            log_activity('CREATE LISTING', 'BuyerListing', listing.id)
            return jsonify({'message': 'Listing created', 'listing': listing.to_dict()}), 201
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Create listing error')

    @app.route('/api/buyer-listings', methods=['GET'])
    @app.route('/api/buyer-listings/', methods=['GET'])
    @role_required('buyer')
    def my_listings():
        listings = BuyerListing.query.filter_by(buyer_id=g.current_user.id) \
            .order_by(BuyerListing.created_at.desc()).all()
        return jsonify({'listings': [l.to_dict() for l in listings]}), 200

    @app.route('/api/buyer-listings/all', methods=['GET'])
    @role_required()
    def all_listings():
        query = BuyerListing.query.filter(BuyerListing.valid_until >= date.today())

        listing_type = request.args.get('type')
        municipality = request.args.get('municipality')
        availability = request.args.get('availability')

        if listing_type in LISTING_CLASSES:
            query = query.filter(getattr(BuyerListing, f'{listing_type}_enabled') == True)
        if municipality and municipality != 'all':
            query = query.filter(func.lower(BuyerListing.municipality) == municipality.lower())
        if availability and availability != 'all':
            query = query.filter(BuyerListing.availability == availability)

        listings = query.order_by(BuyerListing.created_at.desc(), BuyerListing.id.desc()).all()
        return jsonify({'listings': [l.to_dict() for l in listings]}), 200

    def owned_listing(id):
        listing = db.session.get(BuyerListing, id)
        if not listing:
            return None, (jsonify({'error': 'Listing not found'}), 404)
        if listing.buyer_id != g.current_user.id:
            return None, (jsonify({'error': 'You can only manage your own listings'}), 403)
        return listing, None

    @app.route('/api/buyer-listings/<int:id>', methods=['PUT'])
    @role_required('buyer')
    def update_listing(id):
        try:
            listing, error = owned_listing(id)
            if error:
                return error
            apply_listing_fields(listing, get_payload())
            db.session.commit()
            log_activity('UPDATE LISTING', 'BuyerListing', id)
            return jsonify({'message': 'Listing updated', 'listing': listing.to_dict()}), 200
        except ValueError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            return server_error(e, 'Update listing error')

    @app.route('/api/buyer-listings/<int:id>', methods=['DELETE'])
    @role_required('buyer')
    def delete_listing(id):
        try:
            listing, error = owned_listing(id)
            if error:
                return error
            db.session.delete(listing)
            db.session.commit()
            log_activity('DELETE LISTING', 'BuyerListing', id)
            return jsonify({'message': 'Listing deleted'}), 200
        except Exception as e:
            return server_error(e, 'Delete listing error')

    # ============ Notification Routes ============

    @app.route('/api/notifications', methods=['GET'])
    @role_required()
    def get_notifications():
        # User-specific and system-wide notifications
        notifications = Notification.query.filter(
            or_(Notification.user_id == g.current_user.id, Notification.user_id == None)
        ).order_by(Notification.created_at.desc()).limit(20).all()
        return jsonify([n.to_dict() for n in notifications]), 200

    @app.route('/api/notifications/<int:id>/read', methods=['PUT'])
    @role_required()
    def mark_read(id):
        try:
            notif = Notification.query.filter(
                Notification.id == id,
                or_(Notification.user_id == g.current_user.id, Notification.user_id == None)
            ).first()
            if not notif:
                return jsonify({'error': 'Notification not found'}), 404
            notif.is_read = True
            db.session.commit()
            return jsonify({"message": "Read status updated"}), 200
        except Exception as e:
            return server_error(e, 'Notification error')

    @app.route('/api/notifications/read-all', methods=['PUT'])
    @role_required()
    def mark_all_notifications_read():
        try:
            Notification.query.filter(
                or_(Notification.user_id == g.current_user.id, Notification.user_id == None),
                Notification.is_read == False
            ).update({Notification.is_read: True}, synchronize_session=False)
            db.session.commit()
            return jsonify({"message": "All marked as read"}), 200
        except Exception as e:
            return server_error(e, 'Notification error')

    # ============ Activity Logs Routes ============

    @app.route('/api/activity-logs', methods=['GET'])
    @role_required('officer')
    def get_activity_logs():
        page = request.args.get('page', 1, type=int)
        per_page = request.args.get('per_page', app.config['ITEMS_PER_PAGE'], type=int)

        pagination = ActivityLog.query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()) \
            .paginate(page=page, per_page=per_page, error_out=False)

        return jsonify({
            'logs': [log.to_dict() for log in pagination.items],
            'total': pagination.total,
            'pages': pagination.pages,
            'current_page': page
        }), 200

    # Initialize DB tables if they don't exist
    with app.app_context():
        db.create_all()

    return app

if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)))
