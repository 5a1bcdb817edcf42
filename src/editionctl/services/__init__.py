"""Service layer — business operations over the ledger.

Every public method returns a :class:`ServiceResult`. Services own their
transaction boundaries through the injected :class:`Ledger`.
"""
