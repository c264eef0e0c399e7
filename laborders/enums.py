"""
Enumerations shared by models, intake adapters and services.

Stored values are the strings the system of record uses on the wire, so
imported payloads can be persisted without translation.
"""

from django.db import models


class OrderStep(models.TextChoices):
    TEST_METHOD = 'test method', 'Test method'
    PATIENT_DETAILS = 'patient details', 'Patient details'
    PATIENT_TEST_ASSIGNMENT = 'patient test assignment', 'Patient test assignment'
    CLINICAL_DETAILS = 'clinical details', 'Clinical details'
    SAMPLE_DETAILS = 'sample details', 'Sample details'
    CONSENT_FORM = 'consent form', 'Consent form'
    FINALIZE = 'finalize', 'Finalize'

    @classmethod
    def first(cls):
        return list(cls)[0]

    @property
    def position(self):
        return list(type(self)).index(self)

    def next(self):
        """The following step; the terminal step is its own successor."""
        steps = list(type(self))
        if self.position < len(steps) - 1:
            return steps[self.position + 1]
        return self

    def later_of(self, other):
        other = type(self)(other)
        return other if other.position > self.position else self


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    REQUESTED = 'requested', 'Requested'
    LOGISTIC_REQUESTED = 'logistic requested', 'Logistic requested'
    SENT = 'sent', 'Sent'
    RECEIVED = 'received', 'Received'
    PROCESSING = 'processing', 'Processing'
    SEMI_REPORTED = 'semi reported', 'Semi reported'
    REPORTED = 'reported', 'Reported'
    REPORT_DOWNLOADED = 'report downloaded', 'Report downloaded'


# Statuses the requesting account is notified about.
NOTIFY_STATUSES = (OrderStatus.RECEIVED, OrderStatus.PROCESSING, OrderStatus.REPORTED)


class Gender(models.TextChoices):
    MALE = '1', 'Male'
    FEMALE = '0', 'Female'
    UNKNOWN = '-1', 'Unknown'


class ConsanguineousParents(models.TextChoices):
    YES = '1', 'Yes'
    NO = '0', 'No'
    UNKNOWN = '-1', 'Unknown'


class RelationType(models.TextChoices):
    MOTHER = 'Mother'
    FATHER = 'Father'
    SIBLING = 'Sibling'
    SPOUSE = 'Spouse'
    CHILD = 'Child'
    TWIN = 'Twin'
    PARTNER = 'Partner'
    OTHER = 'Other'
