from datetime import timedelta
from pathlib import Path
import sys


# Ensure imports work when running this file directly: `python scripts/init_db.py`.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from scheduling_core.core.time_provider import default_time_provider
from scheduling_core.db import Base, SessionLocal, engine
from scheduling_core.models import Booking, Center, Contract, Tutor


Base.metadata.create_all(bind=engine)

db = SessionLocal()
try:
    if not db.query(Center).first():
        district_1 = Center(name='District 1 Center', address='12 Le Loi, District 1', latitude=10.7769, longitude=106.7009)
        thu_duc = Center(name='Thu Duc Center', address='5 Vo Van Ngan, Thu Duc', latitude=10.8500, longitude=106.7720)
        db.add_all([district_1, thu_duc])
        db.commit()

        tutors = [
            Tutor(full_name='Nguyen Van An', email='an@example.com', latitude=10.78, longitude=106.70, verification_status='approved', center_id=district_1.id),
            Tutor(full_name='Tran Thi Binh', email='binh@example.com', latitude=10.77, longitude=106.69, verification_status='approved', center_id=district_1.id),
            Tutor(full_name='Le Minh Chau', email='chau@example.com', latitude=10.79, longitude=106.71, verification_status='approved', center_id=district_1.id),
            Tutor(full_name='Pham Quoc Dung', email='dung@example.com', latitude=10.84, longitude=106.77, verification_status='pending'),
        ]
        db.add_all(tutors)
        district_1.tutor_count = 3
        db.commit()

        today = default_time_provider.today()
        contract = Contract(
            child_id='child-demo-1',
            package_id='package-demo-1',
            center_id=district_1.id,
            start_date=today,
            end_date=today + timedelta(days=28),
            start_time='17:00',
            end_time='18:30',
            status='pending',
        )
        db.add(contract)
        db.commit()

        for week in range(1, 5):
            db.add(
                Booking(
                    contract_id=contract.id,
                    session_date=today + timedelta(days=7 * week),
                    start_time='17:00',
                    end_time='18:30',
                    status='scheduled',
                )
            )
        db.commit()
finally:
    db.close()

print('DB initialized with sample data.')
