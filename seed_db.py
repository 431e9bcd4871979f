"""Seed a development database with one user per role and some sample records."""

from datetime import date
from decimal import Decimal

from taxpro import create_app, db
from taxpro.models.contact_inquiry import ContactInquiry
from taxpro.models.tax_return import TaxReturn
from taxpro.models.user import User, Role

SEED_PASSWORD = 'Seedling2024'

app = create_app()


def seed_user(email, first_name, last_name, role):
    user = User.find_by_email(email)
    if user is None:
        user = User.create(
            email=email,
            password=SEED_PASSWORD,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        user.verify_email()
        print(f'Created {role} {email}')
    return user


with app.app_context():
    seed_user('admin@taxpro.com', 'Admin', 'User', Role.ADMIN.value)

    accountant_user = seed_user('sarah.mitchell@taxpro.com', 'Sarah', 'Mitchell', Role.ACCOUNTANT.value)
    accountant = accountant_user.accountant
    accountant.qualification = 'ACCA'
    accountant.experience_years = 8
    accountant.specializations = ['self-employed', 'landlord']
    accountant.bio = 'Chartered accountant focused on Self Assessment for sole traders and landlords.'
    accountant.hourly_rate = Decimal('85.00')
    db.session.commit()

    customer_user = seed_user('james.wilson@example.com', 'James', 'Wilson', Role.CUSTOMER.value)
    customer = customer_user.customer
    customer.city = 'Manchester'
    customer.postcode = 'M1 1AE'
    customer.employment_status = 'self-employed'
    db.session.commit()

    if not TaxReturn.query.filter_by(customer_id=customer.id, tax_year='2023-24').first():
        tax_return = TaxReturn.create(
            customer_id=customer.id,
            tax_year='2023-24',
            situation_type='self-employed',
            submission_deadline=date(2025, 1, 31),
        )
        tax_return.assign_accountant(accountant.id)
        tax_return.add_income_source('self_employment', Decimal('42000.00'), employer_name='Wilson Joinery')
        tax_return.add_expense('Tools', 'Replacement mitre saw', Decimal('349.99'), date(2023, 9, 14))
        print(f'Created tax return {tax_return.id}')

    if ContactInquiry.query.count() == 0:
        ContactInquiry.create(
            first_name='Priya',
            last_name='Shah',
            email='priya.shah@example.com',
            subject='Landlord returns',
            message='Do you handle returns for landlords with two rental properties?',
            inquiry_type='tax-return',
        )
        print('Created sample contact inquiry')

    print('✅ Database seeded')
