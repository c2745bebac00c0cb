"""
Copy Engine: конвертация шаблонов маркетингового копирайта между Excel и Word.
"""
