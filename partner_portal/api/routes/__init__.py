from . import auth, licenses, teams, partners
