import random
from datetime import datetime, timedelta, date
from faker import Faker
from app import create_app
from models import (
    db, User, Seedling, AssociationSeedlingDistribution, FarmerSeedlingDistribution,
    MonitoringRecord, Harvest, FiberDelivery, BuyerListing, Notification
)
from monitoring import FARM_CONDITIONS, GROWTH_STAGES, COMMON_ISSUES, generate_monitoring_id
from stats import association_distribution_status

# Initialize Faker
fake = Faker()
app = create_app()

DEFAULT_PASSWORD = "password123"

LOCATIONS = {
    "Culiram": ["Culiram Proper", "San Isidro", "Poblacion", "Mabuhay", "Bagong Silang"],
    "Talacogon": ["Zillovia", "Labnig", "Maharlika", "San Agustin", "Del Monte"],
}
VARIETIES = ["Inosa", "Laylay", "Abuab", "Tangongon", "Musa Textilis 7"]
ASSOCIATIONS = ["Culiram Abaca Growers Association", "Talacogon Fiber Farmers Cooperative"]
GRADES = ["S2", "S3", "I", "G", "H", "JK"]


def random_location():
    municipality = random.choice(list(LOCATIONS))
    return municipality, random.choice(LOCATIONS[municipality])


def clear_data():
    """Deletes existing data to avoid duplicates (Order matters for Foreign Keys)"""
    print("🗑️  Cleaning old data...")
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    print("✅ Database cleared.")

# --------------------------------------------------
# 1. USERS (Officers, Associations, Farmers, Buyers)
# --------------------------------------------------
def seed_users():
    print("👥 Seeding Users...")

    def make_user(email, full_name, role, **extra):
        municipality, barangay = random_location()
        u = User(
            email=email,
            full_name=full_name,
            role=role,
            contact_number=fake.msisdn()[:11],
            address=fake.street_address(),
            municipality=extra.pop('municipality', municipality),
            barangay=extra.pop('barangay', barangay),
            **extra
        )
        u.set_password(DEFAULT_PASSWORD)
        u.mark_verified(None)
        db.session.add(u)
        return u

    admin = make_user("admin@mao.gov.ph", "MAO Super Admin", "officer", is_super_admin=True)
    officers = [admin] + [
        make_user(f"officer{i}@mao.gov.ph", fake.name(), "officer") for i in range(2)
    ]

    associations = [
        make_user(f"association{i}@abaca.org", fake.name(), "association_officer", association_name=name)
        for i, name in enumerate(ASSOCIATIONS)
    ]

    farmers = []
    for i in range(20):
        farmer = make_user(
            f"farmer{i}@abaca.org", fake.name(), "farmer",
            association_name=random.choice(ASSOCIATIONS),
            farm_area_hectares=round(random.uniform(0.5, 5.0), 2)
        )
        farmers.append(farmer)

    buyers = [
        make_user(
            f"buyer{i}@fibertrade.ph", fake.name(), "buyer",
            business_name=fake.company(),
            business_address=fake.address().replace("\n", ", ")
        )
        for i in range(4)
    ]

    # A couple of applications waiting for verification
    for i in range(3):
        pending = User(
            email=f"applicant{i}@abaca.org",
            full_name=fake.name(),
            role=random.choice(['farmer', 'buyer']),
            business_name=fake.company(),
            association_name=random.choice(ASSOCIATIONS)
        )
        pending.set_password(DEFAULT_PASSWORD)
        db.session.add(pending)

    db.session.commit()
    return officers, associations, farmers, buyers

# --------------------------------------------------
# 2. SEEDLING DISTRIBUTIONS
# --------------------------------------------------
def seed_seedlings(officers, associations, farmers):
    print("🌱 Seeding Seedling Distributions...")

    for _ in range(15):
        farmer = random.choice(farmers)
        planted = random.random() < 0.4
        seedling = Seedling(
            variety=random.choice(VARIETIES),
            source_supplier=fake.company(),
            quantity_distributed=random.randint(50, 500),
            date_distributed=fake.date_between(start_date='-180d', end_date='today'),
            recipient_farmer_id=farmer.id,
            recipient_association=farmer.association_name,
            status='planted' if planted else 'distributed_to_farmer',
            distributed_by=random.choice(officers).id,
            remarks=fake.sentence()
        )
        if planted:
            seedling.planting_date = seedling.date_distributed + timedelta(days=random.randint(1, 20))
            seedling.planting_location = f"{farmer.barangay}, {farmer.municipality}"
            seedling.planted_by = farmer.id
            seedling.planted_at = datetime.utcnow()
        db.session.add(seedling)

    for association in associations:
        members = [f for f in farmers if f.association_name == association.association_name]
        for _ in range(3):
            parent = AssociationSeedlingDistribution(
                variety=random.choice(VARIETIES),
                source_supplier=fake.company(),
                quantity_distributed=random.randint(500, 2000),
                date_distributed=fake.date_between(start_date='-120d', end_date='-10d'),
                recipient_association_id=association.id,
                distributed_by=random.choice(officers).id,
                remarks=fake.sentence()
            )
            db.session.add(parent)

            remaining = parent.quantity_distributed
            for farmer in random.sample(members, min(len(members), random.randint(0, 4))):
                quantity = random.randint(20, max(20, remaining // 4))
                if quantity > remaining:
                    break
                remaining -= quantity
                parent.farmer_distributions.append(FarmerSeedlingDistribution(
                    variety=parent.variety,
                    quantity_distributed=quantity,
                    date_distributed=parent.date_distributed + timedelta(days=random.randint(1, 9)),
                    recipient_farmer_id=farmer.id,
                    distributed_by_association=association.id,
                    status=random.choice(['distributed_to_farmer', 'planted'])
                ))
            parent.status = association_distribution_status(
                parent.quantity_distributed, parent.distributed_to_farmers
            )

    db.session.commit()

# --------------------------------------------------
# 3. FIELD MONITORING
# --------------------------------------------------
def seed_monitoring(officers, farmers):
    print("🔎 Seeding Monitoring Records...")

    for farmer in random.sample(farmers, 12):
        visit = fake.date_between(start_date='-90d', end_date='today')
        for visit_no in range(random.randint(1, 3)):
            officer = random.choice(officers)
            last_visit = visit_no == 2
            record = MonitoringRecord(
                monitoring_id=generate_monitoring_id(),
                date_of_visit=visit,
                monitored_by=officer.full_name,
                monitored_by_role='MAO Officer',
                farmer_id=farmer.id,
                farmer_name=farmer.full_name,
                association_name=farmer.association_name,
                farm_location=f"{farmer.barangay}, {farmer.municipality}",
                farm_condition=random.choice(FARM_CONDITIONS),
                growth_stage=random.choice(GROWTH_STAGES),
                issues_observed=random.sample(COMMON_ISSUES, random.randint(1, 3)),
                actions_taken=fake.sentence(),
                recommendations=fake.sentence(),
                next_monitoring_date=None if last_visit else visit + timedelta(days=random.randint(14, 45)),
                status='Completed' if last_visit else 'Ongoing',
                weather_condition=random.choice(['Sunny', 'Cloudy', 'Rainy']),
                estimated_yield=round(random.uniform(100, 900), 2),
                created_by=officer.id
            )
            db.session.add(record)
            visit = visit + timedelta(days=random.randint(20, 40))

    db.session.commit()

# --------------------------------------------------
# 4. HARVESTS & DELIVERIES
# --------------------------------------------------
def seed_harvests(officers, farmers, buyers):
    print("🌾 Seeding Harvests & Deliveries...")

    for farmer in farmers:
        for _ in range(random.randint(0, 3)):
            area = float(farmer.farm_area_hectares or 1)
            fiber = round(random.uniform(80, 600), 2)
            status = random.choice(['Pending Verification', 'Verified', 'Verified', 'In Inventory', 'Rejected'])
            harvest = Harvest(
                farmer_id=farmer.id,
                farmer_name=farmer.full_name,
                farmer_contact=farmer.contact_number,
                cooperative_name=farmer.association_name,
                municipality=farmer.municipality,
                barangay=farmer.barangay,
                farm_name=f"{farmer.full_name.split()[-1]} Farm",
                area_hectares=area,
                abaca_variety=random.choice(VARIETIES),
                harvest_date=fake.date_between(start_date='-200d', end_date='today'),
                harvest_method=random.choice(['Manual Stripping', 'Spindle Stripping']),
                stalks_harvested=random.randint(100, 1500),
                dry_fiber_output_kg=fiber,
                yield_per_hectare_kg=round(fiber / area, 2),
                fiber_grade=random.choice(GRADES),
                bales_produced=random.randint(1, 10),
                status=status
            )
            if status != 'Pending Verification':
                harvest.verified_by = random.choice(officers).id
                harvest.verified_at = datetime.utcnow()
                harvest.verification_notes = fake.sentence() if status == 'Rejected' else None
            db.session.add(harvest)
            db.session.flush()

            if status == 'Verified' and random.random() < 0.7:
                buyer = random.choice(buyers)
                quantity = round(fiber * random.uniform(0.3, 1.0), 2)
                price = round(random.uniform(60, 140), 2)
                delivery_status = random.choice(['In Transit', 'Confirmed', 'Delivered', 'Completed'])
                delivery = FiberDelivery(
                    farmer_id=farmer.id,
                    buyer_id=buyer.id,
                    harvest_id=harvest.id,
                    delivery_date=harvest.harvest_date + timedelta(days=random.randint(3, 20)),
                    variety=harvest.abaca_variety,
                    quantity_kg=quantity,
                    grade=harvest.fiber_grade,
                    municipality=farmer.municipality,
                    barangay=farmer.barangay,
                    price_per_kg=price,
                    total_amount=round(quantity * price, 2),
                    delivery_location=buyer.business_address,
                    farmer_contact=farmer.contact_number,
                    buyer_contact=buyer.contact_number,
                    status=delivery_status,
                    payment_status='Paid' if delivery_status == 'Completed' else 'Pending'
                )
                if delivery_status == 'Completed':
                    delivery.completed_at = datetime.utcnow()
                    delivery.payment_date = date.today()
                db.session.add(delivery)

    db.session.commit()

# --------------------------------------------------
# 5. BUYER LISTINGS & NOTIFICATIONS
# --------------------------------------------------
def seed_listings(buyers):
    print("🏷️  Seeding Buyer Listings...")

    for buyer in buyers:
        listing = BuyerListing(
            buyer_id=buyer.id,
            company_name=buyer.business_name,
            contact_person=buyer.full_name,
            phone=buyer.contact_number,
            email=buyer.email,
            location=buyer.business_address,
            municipality=buyer.municipality,
            barangay=buyer.barangay,
            payment_terms=random.choice(['Cash on delivery', '7 days', '15 days']),
            availability='Available',
            valid_until=date.today() + timedelta(days=3652)
        )
        for grade, base in (('class_a', 120), ('class_b', 95), ('class_c', 70)):
            enabled = grade == 'class_a' or random.random() < 0.6
            setattr(listing, f'{grade}_enabled', enabled)
            setattr(listing, f'{grade}_price', round(base + random.uniform(-10, 10), 2) if enabled else None)
        db.session.add(listing)

    db.session.add(Notification(
        title="Welcome",
        message="The MAO Culiram Abaca System is now online."
    ))
    db.session.commit()

# --------------------------------------------------
# RUNNER
# --------------------------------------------------
if __name__ == '__main__':
    with app.app_context():
        # Create tables first if they don't exist
        db.create_all()

        clear_data()

        # Seed in order of dependency
        officers, associations, farmers, buyers = seed_users()
        seed_seedlings(officers, associations, farmers)
        seed_monitoring(officers, farmers)
        seed_harvests(officers, farmers, buyers)
        seed_listings(buyers)

        print(f"\n✅  Seeding Complete! All accounts use the password '{DEFAULT_PASSWORD}'.")
