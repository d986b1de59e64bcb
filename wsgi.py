from idealab import app
from idealab.db import create_table

create_table()

if __name__ == '__main__':
    app.run(debug=True)
