from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


def _num(value):
    return float(value) if value is not None else None


# --- CONSTANTS ---

USER_ROLES = ('farmer', 'buyer', 'officer', 'association_officer')

SEEDLING_STATUSES = ('distributed_to_farmer', 'planted', 'damaged', 'replanted', 'lost', 'other')

ASSOCIATION_DISTRIBUTION_STATUSES = (
    'distributed_to_association',
    'partially_distributed_to_farmers',
    'fully_distributed_to_farmers',
    'cancelled'
)

HARVEST_STATUSES = ('Pending Verification', 'Verified', 'Rejected', 'In Inventory')

DELIVERY_STATUSES = ('In Transit', 'Confirmed', 'Delivered', 'Completed', 'Cancelled')
PAYMENT_STATUSES = ('Pending', 'Paid')

# --- MODELS ---

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(50), nullable=False)
    is_super_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    is_verified = db.Column(db.Boolean, default=False)
    verification_status = db.Column(db.String(20), default='pending')
    rejection_reason = db.Column(db.Text)
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    verified_at = db.Column(db.DateTime)

    contact_number = db.Column(db.String(50))
    address = db.Column(db.Text)
    municipality = db.Column(db.String(255))
    barangay = db.Column(db.String(255))
    # Farmers: the association they belong to. Association officers: the one they run.
    association_name = db.Column(db.String(255))
    business_name = db.Column(db.String(255))
    business_address = db.Column(db.Text)
    farm_area_hectares = db.Column(db.Numeric(10, 2))

    # --- OTP FIELDS ---
    otp_code = db.Column(db.String(6))
    otp_expiry = db.Column(db.DateTime)

    last_login = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def mark_verified(self, officer_id):
        self.is_verified = True
        self.verification_status = 'verified'
        self.rejection_reason = None
        self.verified_by = officer_id
        self.verified_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
            'is_super_admin': bool(self.is_super_admin),
            'is_active': self.is_active,
            'is_verified': self.is_verified,
            'verification_status': self.verification_status,
            'rejection_reason': self.rejection_reason,
            'contact_number': self.contact_number,
            'address': self.address,
            'municipality': self.municipality,
            'barangay': self.barangay,
            'association_name': self.association_name,
            'business_name': self.business_name,
            'business_address': self.business_address,
            'farm_area_hectares': _num(self.farm_area_hectares),
            'last_login': _iso(self.last_login),
            'created_at': _iso(self.created_at)
        }

    def to_summary(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'contact_number': self.contact_number,
            'municipality': self.municipality,
            'barangay': self.barangay,
            'association_name': self.association_name,
            'business_name': self.business_name
        }


class Seedling(db.Model):
    """Direct MAO to farmer seedling distribution."""
    __tablename__ = 'seedlings'

    id = db.Column(db.Integer, primary_key=True)
    variety = db.Column(db.String(100), nullable=False)
    source_supplier = db.Column(db.String(255))
    quantity_distributed = db.Column(db.Integer, nullable=False)
    date_distributed = db.Column(db.Date, nullable=False)
    recipient_farmer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    recipient_farmer = db.relationship('User', foreign_keys=[recipient_farmer_id])
    recipient_association = db.Column(db.String(255))
    remarks = db.Column(db.Text)
    status = db.Column(db.String(50), default='distributed_to_farmer')
    distributed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    officer = db.relationship('User', foreign_keys=[distributed_by])

    seedling_photo = db.Column(db.Text)
    packaging_photo = db.Column(db.Text)
    quality_photo = db.Column(db.Text)

    planting_date = db.Column(db.Date)
    planting_location = db.Column(db.String(255))
    planting_photo_1 = db.Column(db.Text)
    planting_photo_2 = db.Column(db.Text)
    planting_photo_3 = db.Column(db.Text)
    planting_notes = db.Column(db.Text)
    planted_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    planted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_relations=False):
        data = {
            'seedling_id': self.id,
            'variety': self.variety,
            'source_supplier': self.source_supplier,
            'quantity_distributed': self.quantity_distributed,
            'date_distributed': _iso(self.date_distributed),
            'recipient_farmer_id': self.recipient_farmer_id,
            'recipient_association': self.recipient_association,
            'remarks': self.remarks,
            'status': self.status,
            'distributed_by': self.distributed_by,
            'seedling_photo': self.seedling_photo,
            'packaging_photo': self.packaging_photo,
            'quality_photo': self.quality_photo,
            'planting_date': _iso(self.planting_date),
            'planting_location': self.planting_location,
            'planting_photo_1': self.planting_photo_1,
            'planting_photo_2': self.planting_photo_2,
            'planting_photo_3': self.planting_photo_3,
            'planting_notes': self.planting_notes,
            'planted_by': self.planted_by,
            'planted_at': _iso(self.planted_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_relations:
            data['farmer'] = self.recipient_farmer.to_summary() if self.recipient_farmer else None
            data['officer_name'] = self.officer.full_name if self.officer else None
        return data


class AssociationSeedlingDistribution(db.Model):
    """MAO to association seedling distribution."""
    __tablename__ = 'association_seedling_distributions'

    id = db.Column(db.Integer, primary_key=True)
    variety = db.Column(db.String(100), nullable=False)
    source_supplier = db.Column(db.String(255))
    quantity_distributed = db.Column(db.Integer, nullable=False)
    date_distributed = db.Column(db.Date, nullable=False)
    recipient_association_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    association = db.relationship('User', foreign_keys=[recipient_association_id])
    remarks = db.Column(db.Text)
    status = db.Column(db.String(50), default='distributed_to_association')
    distributed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    officer = db.relationship('User', foreign_keys=[distributed_by])

    seedling_photo = db.Column(db.Text)
    packaging_photo = db.Column(db.Text)
    quality_photo = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    farmer_distributions = db.relationship(
        'FarmerSeedlingDistribution', backref='association_distribution',
        cascade='all, delete-orphan', order_by='FarmerSeedlingDistribution.date_distributed.desc()'
    )

    @property
    def distributed_to_farmers(self):
        return sum(d.quantity_distributed or 0 for d in self.farmer_distributions)

    @property
    def remaining_quantity(self):
        return (self.quantity_distributed or 0) - self.distributed_to_farmers

    def to_dict(self, include_relations=False):
        data = {
            'distribution_id': self.id,
            'variety': self.variety,
            'source_supplier': self.source_supplier,
            'quantity_distributed': self.quantity_distributed,
            'date_distributed': _iso(self.date_distributed),
            'recipient_association_id': self.recipient_association_id,
            'recipient_association_name': self.association.association_name if self.association else None,
            'remarks': self.remarks,
            'status': self.status,
            'distributed_by': self.distributed_by,
            'seedling_photo': self.seedling_photo,
            'packaging_photo': self.packaging_photo,
            'quality_photo': self.quality_photo,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_relations:
            data['distributed_to_farmers'] = self.distributed_to_farmers
            data['remaining_quantity'] = self.remaining_quantity
            data['officer_name'] = self.officer.full_name if self.officer else None
            data['association_officer'] = self.association.to_summary() if self.association else None
        return data


class FarmerSeedlingDistribution(db.Model):
    """Association to farmer seedling distribution."""
    __tablename__ = 'farmer_seedling_distributions'

    id = db.Column(db.Integer, primary_key=True)
    association_distribution_id = db.Column(
        db.Integer, db.ForeignKey('association_seedling_distributions.id', ondelete='CASCADE'), nullable=False
    )
    variety = db.Column(db.String(100), nullable=False)
    quantity_distributed = db.Column(db.Integer, nullable=False)
    date_distributed = db.Column(db.Date, nullable=False)
    recipient_farmer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    farmer = db.relationship('User', foreign_keys=[recipient_farmer_id])
    remarks = db.Column(db.Text)
    status = db.Column(db.String(50), default='distributed_to_farmer')
    distributed_by_association = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    association_officer = db.relationship('User', foreign_keys=[distributed_by_association])

    planting_date = db.Column(db.Date)
    planting_location = db.Column(db.String(255))
    planting_photo_1 = db.Column(db.Text)
    planting_photo_2 = db.Column(db.Text)
    planting_photo_3 = db.Column(db.Text)
    planting_notes = db.Column(db.Text)
    planted_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    planted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_relations=False):
        data = {
            'distribution_id': self.id,
            'association_distribution_id': self.association_distribution_id,
            'variety': self.variety,
            'quantity_distributed': self.quantity_distributed,
            'date_distributed': _iso(self.date_distributed),
            'recipient_farmer_id': self.recipient_farmer_id,
            'remarks': self.remarks,
            'status': self.status,
            'distributed_by_association': self.distributed_by_association,
            'planting_date': _iso(self.planting_date),
            'planting_location': self.planting_location,
            'planting_photo_1': self.planting_photo_1,
            'planting_photo_2': self.planting_photo_2,
            'planting_photo_3': self.planting_photo_3,
            'planting_notes': self.planting_notes,
            'planted_by': self.planted_by,
            'planted_at': _iso(self.planted_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_relations:
            parent = self.association_distribution
            data['farmer'] = self.farmer.to_summary() if self.farmer else None
            data['association_name'] = self.association_officer.association_name if self.association_officer else None
            data['source_supplier'] = parent.source_supplier if parent else None
        return data


class MonitoringRecord(db.Model):
    __tablename__ = 'monitoring_records'

    id = db.Column(db.Integer, primary_key=True)
    monitoring_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    date_of_visit = db.Column(db.Date, nullable=False)
    monitored_by = db.Column(db.String(255), nullable=False)
    monitored_by_role = db.Column(db.String(100))
    farmer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    farmer_name = db.Column(db.String(255), nullable=False)
    association_name = db.Column(db.String(255))
    farm_location = db.Column(db.String(255))
    farm_condition = db.Column(db.String(50), nullable=False)
    growth_stage = db.Column(db.String(50), nullable=False)
    issues_observed = db.Column(db.JSON, default=list)
    other_issues = db.Column(db.Text)
    actions_taken = db.Column(db.Text, nullable=False)
    recommendations = db.Column(db.Text, nullable=False)
    next_monitoring_date = db.Column(db.Date)
    status = db.Column(db.String(20), default='Ongoing')
    weather_condition = db.Column(db.String(100))
    estimated_yield = db.Column(db.Numeric(10, 2))
    remarks = db.Column(db.Text)
    photo_urls = db.Column(db.JSON, default=list)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'monitoring_id': self.monitoring_id,
            'date_of_visit': _iso(self.date_of_visit),
            'monitored_by': self.monitored_by,
            'monitored_by_role': self.monitored_by_role,
            'farmer_id': self.farmer_id,
            'farmer_name': self.farmer_name,
            'association_name': self.association_name,
            'farm_location': self.farm_location,
            'farm_condition': self.farm_condition,
            'growth_stage': self.growth_stage,
            'issues_observed': self.issues_observed or [],
            'other_issues': self.other_issues,
            'actions_taken': self.actions_taken,
            'recommendations': self.recommendations,
            'next_monitoring_date': _iso(self.next_monitoring_date),
            'status': self.status,
            'weather_condition': self.weather_condition,
            'estimated_yield': _num(self.estimated_yield),
            'remarks': self.remarks,
            'photo_urls': self.photo_urls or [],
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Harvest(db.Model):
    __tablename__ = 'harvests'

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    farmer = db.relationship('User', foreign_keys=[farmer_id])

    # Location and farmer info, filled from the farmer profile
    farmer_name = db.Column(db.String(255))
    farmer_contact = db.Column(db.String(50))
    cooperative_name = db.Column(db.String(255))
    municipality = db.Column(db.String(255))
    barangay = db.Column(db.String(255))
    farm_name = db.Column(db.String(255))
    farm_code = db.Column(db.String(100))
    farm_coordinates = db.Column(db.String(255))
    landmark = db.Column(db.String(255))
    area_hectares = db.Column(db.Numeric(10, 2))

    abaca_variety = db.Column(db.String(100))
    planting_date = db.Column(db.Date)
    planting_material_source = db.Column(db.String(255))

    harvest_date = db.Column(db.Date, nullable=False)
    harvest_method = db.Column(db.String(100))
    stalks_harvested = db.Column(db.Integer)
    tuxies_collected = db.Column(db.Integer)
    wet_weight_kg = db.Column(db.Numeric(10, 2))
    dry_fiber_output_kg = db.Column(db.Numeric(10, 2), nullable=False)
    yield_per_hectare_kg = db.Column(db.Numeric(10, 2))

    fiber_grade = db.Column(db.String(50))
    fiber_length_cm = db.Column(db.Numeric(10, 2))
    fiber_color = db.Column(db.String(50))
    moisture_status = db.Column(db.String(50))
    bales_produced = db.Column(db.Integer)
    weight_per_bale_kg = db.Column(db.Numeric(10, 2))

    labor_hours = db.Column(db.Numeric(10, 2))
    number_of_workers = db.Column(db.Integer)
    total_harvesting_cost = db.Column(db.Numeric(12, 2))

    pests_observed = db.Column(db.Boolean, default=False)
    pests_description = db.Column(db.Text)
    diseases_observed = db.Column(db.Boolean, default=False)
    diseases_description = db.Column(db.Text)
    remarks = db.Column(db.Text)
    photo_urls = db.Column(db.JSON, default=list)

    status = db.Column(db.String(50), default='Pending Verification')
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    verified_at = db.Column(db.DateTime)
    verification_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_relations=False):
        data = {
            'harvest_id': self.id,
            'farmer_id': self.farmer_id,
            'farmer_name': self.farmer_name,
            'farmer_contact': self.farmer_contact,
            'cooperative_name': self.cooperative_name,
            'municipality': self.municipality,
            'barangay': self.barangay,
            'farm_name': self.farm_name,
            'farm_code': self.farm_code,
            'farm_coordinates': self.farm_coordinates,
            'landmark': self.landmark,
            'area_hectares': _num(self.area_hectares),
            'abaca_variety': self.abaca_variety,
            'planting_date': _iso(self.planting_date),
            'planting_material_source': self.planting_material_source,
            'harvest_date': _iso(self.harvest_date),
            'harvest_method': self.harvest_method,
            'stalks_harvested': self.stalks_harvested,
            'tuxies_collected': self.tuxies_collected,
            'wet_weight_kg': _num(self.wet_weight_kg),
            'dry_fiber_output_kg': _num(self.dry_fiber_output_kg),
            'yield_per_hectare_kg': _num(self.yield_per_hectare_kg),
            'fiber_grade': self.fiber_grade,
            'fiber_length_cm': _num(self.fiber_length_cm),
            'fiber_color': self.fiber_color,
            'moisture_status': self.moisture_status,
            'bales_produced': self.bales_produced,
            'weight_per_bale_kg': _num(self.weight_per_bale_kg),
            'labor_hours': _num(self.labor_hours),
            'number_of_workers': self.number_of_workers,
            'total_harvesting_cost': _num(self.total_harvesting_cost),
            'pests_observed': self.pests_observed,
            'pests_description': self.pests_description,
            'diseases_observed': self.diseases_observed,
            'diseases_description': self.diseases_description,
            'remarks': self.remarks,
            'photo_urls': self.photo_urls or [],
            'status': self.status,
            'verified_by': self.verified_by,
            'verified_at': _iso(self.verified_at),
            'verification_notes': self.verification_notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_relations:
            data['farmer'] = self.farmer.to_summary() if self.farmer else None
        return data


class FiberDelivery(db.Model):
    __tablename__ = 'fiber_deliveries'

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    farmer = db.relationship('User', foreign_keys=[farmer_id])
    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    buyer = db.relationship('User', foreign_keys=[buyer_id])
    harvest_id = db.Column(db.Integer, db.ForeignKey('harvests.id', ondelete='SET NULL'))

    delivery_date = db.Column(db.Date, nullable=False)
    delivery_time = db.Column(db.String(20))
    variety = db.Column(db.String(100))
    quantity_kg = db.Column(db.Numeric(10, 2), nullable=False)
    grade = db.Column(db.String(50))
    municipality = db.Column(db.String(255))
    barangay = db.Column(db.String(255))
    price_per_kg = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    pickup_location = db.Column(db.String(255))
    delivery_location = db.Column(db.String(255))
    delivery_method = db.Column(db.String(100))
    farmer_contact = db.Column(db.String(50))
    buyer_contact = db.Column(db.String(50))
    notes = db.Column(db.Text)

    status = db.Column(db.String(50), default='In Transit')
    payment_status = db.Column(db.String(20), default='Pending')
    payment_method = db.Column(db.String(50))
    payment_date = db.Column(db.Date)
    receipt_image = db.Column(db.Text)
    delivery_proof_image = db.Column(db.Text)

    confirmed_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, include_relations=False):
        data = {
            'delivery_id': self.id,
            'farmer_id': self.farmer_id,
            'buyer_id': self.buyer_id,
            'harvest_id': self.harvest_id,
            'delivery_date': _iso(self.delivery_date),
            'delivery_time': self.delivery_time,
            'variety': self.variety,
            'quantity_kg': _num(self.quantity_kg),
            'grade': self.grade,
            'municipality': self.municipality,
            'barangay': self.barangay,
            'price_per_kg': _num(self.price_per_kg),
            'total_amount': _num(self.total_amount),
            'pickup_location': self.pickup_location,
            'delivery_location': self.delivery_location,
            'delivery_method': self.delivery_method,
            'farmer_contact': self.farmer_contact,
            'buyer_contact': self.buyer_contact,
            'notes': self.notes,
            'status': self.status,
            'payment_status': self.payment_status,
            'payment_method': self.payment_method,
            'payment_date': _iso(self.payment_date),
            'receipt_image': self.receipt_image,
            'delivery_proof_image': self.delivery_proof_image,
            'confirmed_at': _iso(self.confirmed_at),
            'delivered_at': _iso(self.delivered_at),
            'completed_at': _iso(self.completed_at),
            'cancelled_at': _iso(self.cancelled_at),
            'cancellation_reason': self.cancellation_reason,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_relations:
            data['farmer'] = self.farmer.to_summary() if self.farmer else None
            data['buyer'] = self.buyer.to_summary() if self.buyer else None
        return data


class BuyerListing(db.Model):
    __tablename__ = 'buyer_listings'

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    company_name = db.Column(db.String(255))
    contact_person = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))
    location = db.Column(db.String(255))
    municipality = db.Column(db.String(255))
    barangay = db.Column(db.String(255))

    class_a_enabled = db.Column(db.Boolean, default=False)
    class_a_price = db.Column(db.Numeric(10, 2))
    class_a_image = db.Column(db.Text)
    class_b_enabled = db.Column(db.Boolean, default=False)
    class_b_price = db.Column(db.Numeric(10, 2))
    class_b_image = db.Column(db.Text)
    class_c_enabled = db.Column(db.Boolean, default=False)
    class_c_price = db.Column(db.Numeric(10, 2))
    class_c_image = db.Column(db.Text)

    payment_terms = db.Column(db.String(255))
    requirements = db.Column(db.Text)
    availability = db.Column(db.String(50))
    valid_until = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'listing_id': self.id,
            'buyer_id': self.buyer_id,
            'company_name': self.company_name,
            'contact_person': self.contact_person,
            'phone': self.phone,
            'email': self.email,
            'location': self.location,
            'municipality': self.municipality,
            'barangay': self.barangay,
            'class_a_enabled': bool(self.class_a_enabled),
            'class_a_price': _num(self.class_a_price),
            'class_a_image': self.class_a_image,
            'class_b_enabled': bool(self.class_b_enabled),
            'class_b_price': _num(self.class_b_price),
            'class_b_image': self.class_b_image,
            'class_c_enabled': bool(self.class_c_enabled),
            'class_c_price': _num(self.class_c_price),
            'class_c_image': self.class_c_image,
            'payment_terms': self.payment_terms,
            'requirements': self.requirements,
            'availability': self.availability,
            'valid_until': _iso(self.valid_until),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ActivityLog(db.Model):
    __tablename__ = 'activity_logs'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    user = db.relationship('User')
    action = db.Column(db.String(255), nullable=False)
    entity_type = db.Column(db.String(100))
    entity_id = db.Column(db.String(100))
    details = db.Column(db.Text)
    ip_address = db.Column(db.String(50))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_name': self.user.full_name if self.user else None,
            'action': self.action,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'details': self.details,
            'created_at': _iso(self.created_at)
        }


class Notification(db.Model):
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
            "created_at_human": self.created_at.strftime("%b %d, %I:%M %p")
        }


class TokenBlocklist(db.Model):
    __tablename__ = 'token_blocklist'
    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
