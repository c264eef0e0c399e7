from django.db import models

from .enums import ConsanguineousParents, Gender, OrderStatus, OrderStep, RelationType


class Account(models.Model):
    """Requesting actor: owns orders, patients and materials."""

    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True, default='')
    referrer_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'accounts'

    def __str__(self):
        return self.name


# ── Catalog ────────────────────────────────────────────────────────────────

class Consent(models.Model):
    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=200)
    file = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        db_table = 'consents'


class Instruction(models.Model):
    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=200)
    file = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        db_table = 'instructions'


class OrderForm(models.Model):
    """
    Intake questionnaire template.

    form_data is an ordered list of field definitions:
    [{"type": "text", "label": "Symptoms", "required": true}, ...]
    Orders hold copies of it (see as_attachment), never references.
    """

    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=200)
    file = models.CharField(max_length=500, blank=True, default='')
    form_data = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'order_forms'

    def as_attachment(self):
        return {
            'id': self.id,
            'name': self.name,
            'file': self.file,
            'formData': [dict(field) for field in (self.form_data or [])],
        }


class SampleType(models.Model):
    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=200)
    orderable = models.BooleanField(default=True)
    sample_id_required = models.BooleanField(default=False)
    is_placeholder = models.BooleanField(default=False)

    class Meta:
        db_table = 'sample_types'

    def __str__(self):
        return self.name


class Test(models.Model):
    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    code = models.CharField(max_length=64)
    name = models.CharField(max_length=255)
    short_name = models.CharField(max_length=100, blank=True, default='')
    description = models.TextField(blank=True, default='')
    turnaround_time = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    gender = models.JSONField(default=list, blank=True)
    consent = models.ForeignKey(Consent, null=True, blank=True, on_delete=models.SET_NULL, related_name='tests')
    order_forms = models.ManyToManyField(OrderForm, blank=True, related_name='tests')
    instruction = models.ForeignKey(
        Instruction, null=True, blank=True, on_delete=models.SET_NULL, related_name='tests'
    )
    sample_types = models.ManyToManyField(SampleType, through='SampleTypeTest', related_name='tests')
    is_placeholder = models.BooleanField(default=False)

    class Meta:
        db_table = 'tests'

    def __str__(self):
        return f'{self.code} {self.name}'


class SampleTypeTest(models.Model):
    test = models.ForeignKey(Test, on_delete=models.CASCADE, related_name='sample_type_links')
    sample_type = models.ForeignKey(SampleType, on_delete=models.CASCADE, related_name='test_links')
    is_default = models.BooleanField(default=False)
    description = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'sample_type_test'
        constraints = [
            models.UniqueConstraint(fields=['test', 'sample_type'], name='uniq_sample_type_test'),
        ]


# ── Patients ───────────────────────────────────────────────────────────────

class Patient(models.Model):
    owner = models.ForeignKey(Account, on_delete=models.CASCADE, related_name='patients')
    server_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    full_name = models.CharField(max_length=255)
    nationality = models.CharField(max_length=8)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=2, choices=Gender.choices, default=Gender.UNKNOWN)
    consanguineous_parents = models.CharField(
        max_length=2, choices=ConsanguineousParents.choices, default=ConsanguineousParents.UNKNOWN
    )
    contact = models.JSONField(null=True, blank=True)
    extra = models.JSONField(null=True, blank=True)
    is_fetus = models.BooleanField(default=False)
    reference_id = models.CharField(max_length=64, null=True, blank=True)
    id_no = models.CharField(max_length=64, null=True, blank=True)
    related_patients = models.ManyToManyField(
        'self', through='PatientRelation', through_fields=('patient', 'related_patient'),
        symmetrical=False, related_name='related_to',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'

    def __str__(self):
        return self.full_name


class PatientRelation(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='relations')
    related_patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='inverse_relations')
    relation_type = models.CharField(max_length=20, choices=RelationType.choices, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient_relations'
        constraints = [
            models.UniqueConstraint(fields=['patient', 'related_patient'], name='uniq_patient_relation'),
        ]


# ── Materials ──────────────────────────────────────────────────────────────

class OrderMaterial(models.Model):
    """A batch of collection materials requested by an account."""

    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    owner = models.ForeignKey(Account, on_delete=models.CASCADE, related_name='order_materials')
    sample_type = models.ForeignKey(SampleType, on_delete=models.PROTECT, related_name='order_materials')
    amount = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=32, default='requested')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_materials'


class Material(models.Model):
    barcode = models.CharField(max_length=64, unique=True)
    sample_type = models.ForeignKey(SampleType, on_delete=models.PROTECT, related_name='materials')
    order_material = models.ForeignKey(
        OrderMaterial, null=True, blank=True, on_delete=models.SET_NULL, related_name='materials'
    )
    owner = models.ForeignKey(Account, null=True, blank=True, on_delete=models.SET_NULL, related_name='materials')
    expire_date = models.DateField(null=True, blank=True)

    class Meta:
        db_table = 'materials'

    def __str__(self):
        return self.barcode


# ── Orders ─────────────────────────────────────────────────────────────────

class Order(models.Model):
    owner = models.ForeignKey(Account, on_delete=models.CASCADE, related_name='orders')
    server_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    step = models.CharField(max_length=32, choices=OrderStep.choices, default=OrderStep.TEST_METHOD)
    status = models.CharField(max_length=32, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    main_patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='main_orders'
    )
    patients = models.ManyToManyField(Patient, blank=True, related_name='orders')
    tests = models.ManyToManyField(Test, through='OrderItem', related_name='orders')
    order_forms = models.JSONField(default=list, blank=True)
    consents = models.JSONField(default=dict, blank=True)
    files = models.JSONField(default=list, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    reported_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'

    @property
    def order_id(self):
        """Display identifier, e.g. OR.20240315.42"""
        return f"OR.{self.created_at.strftime('%Y%m%d')}.{self.id}"

    @property
    def current_step(self):
        return OrderStep(self.step)

    def samples(self):
        return Sample.objects.filter(order_items__order=self).distinct()


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='order_items')
    test = models.ForeignKey(Test, on_delete=models.PROTECT, related_name='order_items')
    server_id = models.CharField(max_length=64, null=True, blank=True)
    patients = models.ManyToManyField(Patient, through='OrderItemPatient', related_name='order_items')
    samples = models.ManyToManyField('Sample', blank=True, related_name='order_items', db_table='order_item_sample')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_items'


class OrderItemPatient(models.Model):
    order_item = models.ForeignKey(OrderItem, on_delete=models.CASCADE, related_name='patient_links')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='order_item_links')
    is_main = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'order_item_patient'
        constraints = [
            models.UniqueConstraint(fields=['order_item', 'patient'], name='uniq_order_item_patient'),
        ]


class Sample(models.Model):
    sample_id = models.CharField(max_length=64, null=True, blank=True)
    sample_type = models.ForeignKey(SampleType, on_delete=models.PROTECT, related_name='samples')
    material = models.ForeignKey(Material, null=True, blank=True, on_delete=models.SET_NULL, related_name='samples')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='samples')
    collection_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'samples'
